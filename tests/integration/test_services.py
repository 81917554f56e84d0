"""
End-to-end tests for the daytime and discard services on both engines.
"""

import re
import socket

import pytest

from conftest import RecordingHandler, connect_and_close, read_until_eof, wait_until
from protoharness import Builder, ReactorEngine, ThreadedEngine
from protoharness.protocols import DaytimeHandler, DiscardHandler, daytime_factory


pytestmark = pytest.mark.integration


DAYTIME_REPLY = re.compile(r"^\w{3}, \d{2} \w{3} \d{4} \d{2}:\d{2}:\d{2} [+-]\d{4}\r\n$")

ENGINES = [ThreadedEngine, ReactorEngine]


@pytest.mark.parametrize("engine_cls", ENGINES)
def test_daytime_over_tcp(config, run_in_background, engine_cls):
    requests = []

    class CountingDaytime(DaytimeHandler):
        def on_request(self):
            requests.append(self.handshake)
            super().on_request()

    builder = Builder(config).bind("127.0.0.1:0")
    address = builder.addresses[0]
    run = run_in_background(builder.build(CountingDaytime, engine_cls))

    for _ in range(3):
        reply = read_until_eof(address).decode("ascii")
        assert DAYTIME_REPLY.match(reply), reply

    assert wait_until(lambda: len(requests) == 3)
    assert not run.finished.is_set()


def test_daytime_over_udp(config, run_in_background):
    builder = Builder(config).bind("127.0.0.1:0")
    address = builder.addresses[0]
    builder = builder.bind_datagram(address)
    run_in_background(builder.build(daytime_factory))

    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as client:
        client.settimeout(5.0)
        client.sendto(b"\n", address)
        data, _origin = client.recvfrom(1024)

    assert DAYTIME_REPLY.match(data.decode("ascii"))

    # TCP on the same address still works
    assert DAYTIME_REPLY.match(read_until_eof(address).decode("ascii"))


@pytest.mark.parametrize("engine_cls", ENGINES)
def test_discard_sends_nothing(config, run_in_background, engine_cls):
    handlers = []

    def factory(sender):
        handler = DiscardHandler(sender)
        handlers.append(handler)
        return handler

    builder = Builder(config).bind("127.0.0.1:0")
    address = builder.addresses[0]
    run_in_background(builder.build(factory, engine_cls))

    assert read_until_eof(address) == b""
    assert wait_until(lambda: len(handlers) == 1)
    assert handlers[0].sender.bytes_sent == 0


@pytest.mark.parametrize("engine_cls", ENGINES)
def test_duplicate_bind_keeps_first_listener(config, recorder, run_in_background, engine_cls):
    builder = Builder(config).bind("127.0.0.1:0")
    address = builder.addresses[0]

    with pytest.raises(OSError):
        builder.bind(address)

    engine = builder.build(recorder.factory, engine_cls)
    run = run_in_background(engine)

    connect_and_close(address)

    assert wait_until(lambda: recorder.count("close") == 1)
    assert len(engine.listeners) == 1
    assert not run.finished.is_set()


def test_connections_are_closed_by_server(config, recorder, run_in_background):
    class Greeter(RecordingHandler):
        def on_request(self):
            super().on_request()
            self.sender.send("hello\r\n")

    builder = Builder(config).bind("127.0.0.1:0")
    address = builder.addresses[0]
    run_in_background(builder.build(lambda sender: Greeter(recorder, sender), ReactorEngine))

    assert read_until_eof(address) == b"hello\r\n"

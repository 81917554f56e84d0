"""
Integration tests for ReactorEngine over loopback sockets.
"""

import socket
import threading
import time
from unittest.mock import Mock

import pytest

from conftest import RecordingHandler, connect_and_close, wait_until
from protoharness import Builder, ReactorEngine


pytestmark = pytest.mark.integration


def build_reactor(config, factory, count=1):
    builder = Builder(config)
    for _ in range(count):
        builder = builder.bind("127.0.0.1:0")
    addresses = builder.addresses
    return builder.build(factory, ReactorEngine), addresses


class FailingListener:
    """Stands in for a listener whose accept() fails hard."""

    def accept(self):
        raise ConnectionAbortedError(103, "Software caused connection abort")

    def getsockname(self):
        return ("127.0.0.1", 0)


def test_serves_every_listener(config, recorder, run_in_background):
    engine, addresses = build_reactor(config, recorder.factory, count=2)
    run = run_in_background(engine)

    for i in range(50):
        connect_and_close(addresses[i % 2])

    assert wait_until(lambda: recorder.count("close") == 50)
    assert recorder.count("open") == 50
    assert all(h.calls == ["open", "request", "close"] for h in recorder.handlers)
    assert wait_until(lambda: engine.accepted == 50)
    assert not run.finished.is_set()


def test_handshake_matches_client(config, recorder, run_in_background):
    engine, addresses = build_reactor(config, recorder.factory)
    run_in_background(engine)

    local = connect_and_close(addresses[0])

    assert wait_until(lambda: recorder.count("close") == 1)
    shake = recorder.handshakes()[0]
    assert shake.peer_address == local
    assert shake.local_address == addresses[0]
    assert shake.is_stream


def test_everything_runs_on_one_thread(config, run_in_background):
    threads = set()

    def factory(sender):
        threads.add(threading.get_ident())
        return lambda: threads.add(threading.get_ident())

    engine, addresses = build_reactor(config, factory, count=2)
    run = run_in_background(engine)

    for i in range(10):
        connect_and_close(addresses[i % 2])

    assert wait_until(lambda: engine.accepted == 10)
    assert threads == {run._thread.ident}


def test_drains_backlog_in_one_wakeup(config, recorder, run_in_background):
    """Every queued connection is served before the next wait."""
    queued = 20
    engine, addresses = build_reactor(config, recorder.factory)

    opens_at_wait = []
    original_wait = engine._poller.wait

    def recording_wait():
        opens_at_wait.append(recorder.count("open"))
        return original_wait()

    engine._poller.wait = recording_wait

    for _ in range(queued):
        connect_and_close(addresses[0])
    time.sleep(0.2)

    run_in_background(engine)

    assert wait_until(lambda: len(opens_at_wait) >= 2)
    assert opens_at_wait[:2] == [0, queued]
    assert engine.wakeups == 1


def test_unknown_tokens_are_ignored(config, recorder):
    engine, _addresses = build_reactor(config, recorder.factory)

    engine.dispatch([None, 999])

    assert recorder.count("open") == 0


def test_drain_with_nothing_pending(config, recorder):
    engine, _addresses = build_reactor(config, recorder.factory)

    assert engine.drain(engine.registry[0]) == 0


def test_tokens_are_distinct(config):
    engine, addresses = build_reactor(config, lambda sender: lambda: None, count=3)

    assert sorted(engine.registry) == [0, 1, 2]
    assert [sock.getsockname() for sock in engine.listeners] == addresses
    assert all(sock.gettimeout() == 0.0 for sock in engine.listeners)


def test_accept_failure_is_fatal(config, recorder):
    engine, _addresses = build_reactor(config, recorder.factory)
    engine.registry[7] = FailingListener()
    engine._poller.wait = Mock(return_value=[7])

    with pytest.raises(ConnectionAbortedError):
        engine.run()


def test_poller_failure_is_fatal(config, recorder):
    engine, _addresses = build_reactor(config, recorder.factory)
    engine._poller.wait = Mock(side_effect=OSError(4, "poll failed"))
    engine._poller.close = Mock(wraps=engine._poller.close)

    with pytest.raises(OSError):
        engine.run()

    # The failed run released its poller
    engine._poller.close.assert_called_once()

    with pytest.raises(RuntimeError):
        engine.run()


def test_hook_failure_is_fatal_after_close(config, recorder, run_in_background):
    class Broken(RecordingHandler):
        def on_request(self):
            super().on_request()
            raise KeyError("broken handler")

    engine, addresses = build_reactor(config, lambda sender: Broken(recorder, sender))
    run = run_in_background(engine)

    connect_and_close(addresses[0])

    assert run.wait_finished()
    assert isinstance(run.error, KeyError)
    assert recorder.handlers[0].calls == ["open", "request", "close"]
    assert not recorder.handlers[0].sender.active


def test_rejects_datagram_sockets(config):
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        with pytest.raises(ValueError):
            ReactorEngine([], lambda sender: lambda: None, datagram_sockets=[sock], config=config)


def test_fatal_error_closes_poller(config, recorder, run_in_background):
    class Broken(RecordingHandler):
        def on_open(self, handshake):
            super().on_open(handshake)
            raise ValueError("broken handler")

    engine, addresses = build_reactor(config, lambda sender: Broken(recorder, sender))
    poller_close = Mock(wraps=engine._poller.close)
    engine._poller.close = poller_close
    run = run_in_background(engine)

    connect_and_close(addresses[0])

    assert run.wait_finished()
    assert isinstance(run.error, ValueError)
    poller_close.assert_called_once()

    # The listeners are not the engine's to close
    assert all(sock.fileno() != -1 for sock in engine.listeners)


def test_repeated_failed_runs_do_not_leak_pollers(config, recorder):
    """Every failed run closes its own poller."""
    closed = []

    for _ in range(5):
        engine, _addresses = build_reactor(config, recorder.factory)
        poller = engine._poller
        poller.wait = Mock(side_effect=OSError(4, "poll failed"))

        with pytest.raises(OSError):
            engine.run()

        if hasattr(poller, "_epoll"):
            closed.append(poller._epoll.closed)
        else:
            closed.append(poller._selector.get_map() is None)

        for sock in engine.listeners:
            sock.close()

    assert closed == [True] * 5

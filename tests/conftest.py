"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from protoharness import HarnessConfig, Handler, Handshake


@pytest.fixture
def config() -> HarnessConfig:
    """Default test configuration."""
    return HarnessConfig(backlog=128, log_level="WARNING")


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class Recorder:
    """
    Thread-safe log of lifecycle events, plus a factory producing
    handlers that write into it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.events: List[tuple] = []
        self.handlers: List["RecordingHandler"] = []

    def record(self, kind: str, handler: "RecordingHandler", payload=None):
        with self._lock:
            self.events.append((kind, handler, payload, time.monotonic()))

    def count(self, kind: str) -> int:
        with self._lock:
            return sum(1 for event in self.events if event[0] == kind)

    def handshakes(self) -> List[Handshake]:
        with self._lock:
            return [event[2] for event in self.events if event[0] == "open"]

    def register(self, handler: "RecordingHandler") -> None:
        with self._lock:
            self.handlers.append(handler)

    def factory(self, sender) -> "RecordingHandler":
        return RecordingHandler(self, sender)


class RecordingHandler(Handler):
    """Records its hooks. Every instance, subclasses included, joins recorder.handlers."""

    def __init__(self, recorder: Recorder, sender):
        self.recorder = recorder
        self.sender = sender
        self.calls: List[str] = []
        self.handshake: Optional[Handshake] = None
        recorder.register(self)

    def on_open(self, handshake):
        self.handshake = handshake
        self.calls.append("open")
        self.recorder.record("open", self, handshake)

    def on_request(self):
        self.calls.append("request")
        self.recorder.record("request", self)

    def on_close(self):
        self.calls.append("close")
        self.recorder.record("close", self)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class BackgroundRun:
    """Runs ``engine.run()`` on a daemon thread and captures what it raises."""

    def __init__(self, engine):
        self.engine = engine
        self.error: Optional[BaseException] = None
        self.finished = threading.Event()
        self._thread = threading.Thread(target=self._target, daemon=True)

    def _target(self):
        try:
            self.engine.run()
        except BaseException as e:
            self.error = e
        finally:
            self.finished.set()

    def start(self) -> "BackgroundRun":
        self._thread.start()
        return self

    def wait_finished(self, timeout: float = 5.0) -> bool:
        return self.finished.wait(timeout)


@pytest.fixture
def run_in_background() -> Generator[Callable[..., BackgroundRun], None, None]:
    """
    Start engines in the background.

    Engines have no shutdown: their threads are daemons and are simply
    abandoned when the test ends.
    """
    def start(engine) -> BackgroundRun:
        return BackgroundRun(engine).start()

    yield start


def connect_and_close(address, payload: bytes = b"") -> tuple:
    """Open a TCP connection, optionally write, close. Returns our local address."""
    with socket.create_connection(address[:2], timeout=5.0) as client:
        local = client.getsockname()
        if payload:
            client.sendall(payload)
    return local


def read_until_eof(address, timeout: float = 5.0) -> bytes:
    """Connect and read everything the server sends before it closes."""
    chunks = []
    with socket.create_connection(address[:2], timeout=timeout) as client:
        while True:
            chunk = client.recv(1024)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)

"""
=============================================================================
THE LIFECYCLE CONTRACT
=============================================================================

Every engine drives the same three hooks for each accepted connection or
datagram:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     One connection cycle                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   accept()/recvfrom()                                               │
    │        │                                                            │
    │        ├──► Handshake            (who connected, where)             │
    │        ├──► Sender               (how to write back)                │
    │        ├──► factory.connection_made(sender) ──► handler             │
    │        │                                                            │
    │        ├──► handler.on_open(handshake)     exactly once             │
    │        ├──► handler.on_request()           once per cycle           │
    │        ├──► handler.on_close()             exactly once, last       │
    │        │                                                            │
    │        └──► sender.release()               connection closed        │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

All hooks default to no-ops, so a handler implements only what it needs.
Small handlers don't need a class at all:

    lambda sender: lambda: sender.send("hi")       # callable = on_request
    lambda sender: (on_open, on_close)             # pair = (open, close)

as_factory() / as_handler() turn those shapes into the full interface.

=============================================================================
"""

import socket
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from .handshake import Handshake
from .sender import Sender, StreamSender, DatagramSender


logger = logging.getLogger(__name__)


class Handler:
    """
    Per-connection behavior. One instance per connection/datagram.

    Subclass and override the hooks you care about.
    """

    def on_open(self, handshake: Handshake) -> None:
        """Called once, right after the connection is accepted."""

    def on_request(self) -> None:
        """Called after on_open; write replies through the Sender here."""

    def on_close(self) -> None:
        """Called once, after every other hook, before the connection is released."""


class FunctionHandler(Handler):
    """A single callable acting as ``on_request``."""

    def __init__(self, on_request: Callable[[], Any]):
        self._on_request = on_request

    def on_request(self) -> None:
        self._on_request()


class PairHandler(Handler):
    """Two callables acting as ``(on_open, on_close)``."""

    def __init__(self, on_open: Callable[[Handshake], Any], on_close: Callable[[], Any]):
        self._on_open = on_open
        self._on_close = on_close

    def on_open(self, handshake: Handshake) -> None:
        self._on_open(handshake)

    def on_close(self) -> None:
        self._on_close()


class Factory(ABC):
    """
    Produces one Handler per accepted connection/datagram.

    connection_made() must return promptly: in the threaded engine it runs
    under a lock shared by every worker, and in the reactor engine it runs
    on the only thread there is.
    """

    @abstractmethod
    def connection_made(self, sender: Sender) -> Handler:
        pass


class FunctionFactory(Factory):
    """A plain ``func(sender)`` used as a factory."""

    def __init__(self, func: Callable[[Sender], Any]):
        self._func = func

    def connection_made(self, sender: Sender) -> Handler:
        return as_handler(self._func(sender))

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FunctionFactory({name})"


def as_handler(value: Any) -> Handler:
    """
    Normalize the accepted handler shapes into a Handler.

    Accepts a Handler, a 2-tuple ``(on_open, on_close)`` of callables, or a
    single callable acting as ``on_request``.
    """
    if isinstance(value, Handler):
        return value
    if isinstance(value, tuple):
        if len(value) == 2 and all(callable(part) for part in value):
            return PairHandler(value[0], value[1])
        raise TypeError(f"handler tuple must be (on_open, on_close) callables, got {value!r}")
    if callable(value):
        return FunctionHandler(value)
    raise TypeError(f"cannot use {type(value).__name__} as a handler")


def as_factory(value: Any) -> Factory:
    """Normalize a Factory or a ``func(sender)`` callable into a Factory."""
    if isinstance(value, Factory):
        return value
    if callable(value):
        return FunctionFactory(value)
    raise TypeError(f"cannot use {type(value).__name__} as a factory")


def run_lifecycle(handler: Handler, handshake: Handshake) -> None:
    """
    Drive the hooks of one cycle: open, request, close.

    on_close() runs even when on_open()/on_request() raise; the original
    exception then propagates to the engine.
    """
    try:
        handler.on_open(handshake)
        handler.on_request()
    finally:
        handler.on_close()


def serve_stream(conn: socket.socket, connection_made: Callable[[Sender], Handler]) -> None:
    """
    Run one full cycle for an accepted stream connection.

    The connection is always closed when this returns or raises.

    Args:
        conn: The accepted socket, in blocking mode.
        connection_made: The (possibly guarded) factory call.

    Raises:
        OSError: Handshake extraction failed (peer already reset) or a
                 write failed.
        Exception: Whatever the factory or a hook raised.
    """
    try:
        handshake = Handshake.from_stream(conn)
    except OSError:
        conn.close()
        raise

    logger.debug(f"Accepted connection {handshake}")

    sender = StreamSender(conn)
    try:
        handler = connection_made(sender)
        run_lifecycle(handler, handshake)
    finally:
        sender.release()

    logger.debug(f"Closed connection {handshake} ({sender.bytes_sent} bytes sent)")


def serve_datagram(
    sock: socket.socket,
    origin: Any,
    connection_made: Callable[[Sender], Handler],
) -> None:
    """Run one full cycle for a datagram received on ``sock`` from ``origin``."""
    handshake = Handshake.from_datagram(sock, origin)
    logger.debug(f"Received datagram {handshake}")

    sender = DatagramSender(sock, origin)
    try:
        handler = connection_made(sender)
        run_lifecycle(handler, handshake)
    finally:
        sender.release()

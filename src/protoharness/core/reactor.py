"""
=============================================================================
REACTOR ENGINE: ONE THREAD, READINESS MULTIPLEXING
=============================================================================

All listeners are served from a single thread. Instead of blocking in
accept() on one socket, we block in the poller until ANY listener becomes
readable, then accept from that one.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ReactorEngine.run()                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   while True:                                                       │
    │       │                                                             │
    │       ├──► poller.wait()            blocks, no timeout              │
    │       │       └── [token, token, ...]                               │
    │       │                                                             │
    │       └──► for token in tokens:                                     │
    │               listener = registry.get(token)                        │
    │               └── unknown token? ignore it                          │
    │               │                                                     │
    │               └──► DRAIN: accept() until BlockingIOError            │
    │                       └── each connection: open → request → close   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
EDGE-TRIGGERED READINESS AND THE DRAIN RULE
=============================================================================

Listeners are registered with EPOLLIN | EPOLLET. Edge-triggered means the
kernel reports a TRANSITION (not readable -> readable), not a level:

    10 clients connect at once      ──► ONE event for the listener
    we accept() only one of them    ──► 9 still pending, listener still
                                        readable, but no new transition
    poller.wait()                   ──► never wakes up for those 9!

So every event must be drained: accept() in a loop until it reports
would-block (BlockingIOError). Would-block is the normal end of a drain,
never an error.

Where epoll is missing (macOS, Windows) the engine falls back to
selectors.DefaultSelector, which is level-triggered. Draining is still
correct there; it just saves wakeups.

=============================================================================
FAILURE POLICY
=============================================================================

Any exception other than would-block is fatal: accept errors, handshake
errors, factory or hook exceptions, poller errors. It propagates out of
run() immediately and the whole engine stops, healthy listeners included.

A slow handler stalls every listener. There is no fairness beyond the
order the poller returns events in.

=============================================================================
"""

import select
import socket
import logging
import selectors
import itertools
from typing import Any, Dict, List, Optional, Sequence

from ..config import HarnessConfig
from .handshake import format_address
from .handler import Handler, as_factory, as_handler, serve_stream
from .sender import Sender


logger = logging.getLogger(__name__)


class EpollPoller:
    """Edge-triggered readable interest on Linux epoll."""

    edge_triggered = True

    def __init__(self, max_events: int = 1024):
        self._epoll = select.epoll()
        self._max_events = max_events
        self._tokens: Dict[int, int] = {}

    def register(self, sock: socket.socket, token: int) -> None:
        fd = sock.fileno()
        self._epoll.register(fd, select.EPOLLIN | select.EPOLLET)
        self._tokens[fd] = token

    def wait(self) -> List[Optional[int]]:
        """Block until at least one registered socket is ready."""
        events = self._epoll.poll(-1, self._max_events)
        return [self._tokens.get(fd) for fd, _mask in events]

    def close(self) -> None:
        self._epoll.close()


class SelectorPoller:
    """Level-triggered fallback on the platform's default selector."""

    edge_triggered = False

    def __init__(self, max_events: int = 1024):
        self._selector = selectors.DefaultSelector()

    def register(self, sock: socket.socket, token: int) -> None:
        self._selector.register(sock, selectors.EVENT_READ, data=token)

    def wait(self) -> List[Optional[int]]:
        return [key.data for key, _mask in self._selector.select(None)]

    def close(self) -> None:
        self._selector.close()


def make_poller(max_events: int = 1024):
    """Pick the edge-triggered poller where the platform has one."""
    if hasattr(select, "epoll"):
        return EpollPoller(max_events)
    return SelectorPoller(max_events)


class ReactorEngine:
    """
    Serves every bound stream listener from the calling thread.

    Usage:
        engine = Builder().bind(":9").bind(":9999").build(factory, ReactorEngine)
        engine.run()  # blocks; raises on the first fatal error

    Attributes:
        registry: token -> listener. Filled at construction, never shrunk.
    """

    def __init__(
        self,
        listeners: Sequence[socket.socket],
        factory: Any,
        datagram_sockets: Sequence[socket.socket] = (),
        config: Optional[HarnessConfig] = None,
    ):
        if datagram_sockets:
            raise ValueError(
                "ReactorEngine serves stream listeners only; "
                "use ThreadedEngine for datagram sockets"
            )

        self.config = config or HarnessConfig()
        self._factory = as_factory(factory)
        self._poller = make_poller(self.config.max_events)
        self._running = False

        self.registry: Dict[int, socket.socket] = {}
        tokens = itertools.count()

        for listener in listeners:
            token = next(tokens)
            listener.setblocking(False)
            self._poller.register(listener, token)
            self.registry[token] = listener
            logger.debug(f"Registered {format_address(listener.getsockname())} as token {token}")

        # Metrics
        self.wakeups = 0
        self.accepted = 0

    @property
    def listeners(self):
        return tuple(self.registry.values())

    @property
    def edge_triggered(self) -> bool:
        return self._poller.edge_triggered

    def _connection_made(self, sender: Sender) -> Handler:
        return as_handler(self._factory.connection_made(sender))

    def run(self) -> None:
        """
        Wait, dispatch, repeat. Never returns normally.

        The poller is closed when run() raises, so an engine runs at most once.

        Raises:
            OSError: The poller or an accept() failed.
            Exception: A factory or handler hook raised.
        """
        if self._running:
            raise RuntimeError("engine already running")
        self._running = True

        logger.info(
            f"Reactor engine serving {len(self.registry)} listeners "
            f"({'edge' if self.edge_triggered else 'level'}-triggered)"
        )

        try:
            while True:
                tokens = self._poller.wait()
                self.wakeups += 1
                self.dispatch(tokens)
        except Exception as e:
            logger.error(f"Reactor engine stopped: {e!r}")
            raise
        finally:
            # The engine is spent; listeners stay with whoever owns them
            self._poller.close()

    def dispatch(self, tokens: Sequence[Optional[int]]) -> None:
        """Drain the listener behind each token; unknown tokens are ignored."""
        for token in tokens:
            listener = self.registry.get(token)
            if listener is None:
                logger.debug(f"Ignoring readiness event for unknown token {token}")
                continue

            self.drain(listener)

    def drain(self, listener: socket.socket) -> int:
        """
        Accept and fully serve connections until the listener would block.

        Returns:
            Number of connections served.
        """
        served = 0

        while True:
            try:
                conn, _client_address = listener.accept()
            except BlockingIOError:
                return served

            # Handlers get an ordinary blocking socket
            conn.setblocking(True)
            serve_stream(conn, self._connection_made)

            served += 1
            self.accepted += 1

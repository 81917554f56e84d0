"""
=============================================================================
BUILDER: EAGER BINDING, THEN HAND-OFF TO AN ENGINE
=============================================================================

    engine = (Builder()
              .bind("0.0.0.0:9")          # socket() + bind() + listen() NOW
              .bind("0.0.0.0:9999")       # new Builder owning both sockets
              .build(factory))            # sockets + factory -> engine
    engine.run()                          # blocks

Binding happens inside bind(), not later in run(). A port that is already
taken fails right there, at the line that asked for it:

    builder = Builder().bind("127.0.0.1:9999")
    builder.bind("127.0.0.1:9999")        # OSError: address in use
    builder.build(factory).run()          # still serves the first listener

The builder is a consuming chain. A successful bind() hands every socket
to the returned builder and retires the old one; build() hands them to the
engine. A retired builder raises BuilderConsumedError. A FAILED bind() does
not retire anything, so the listeners bound so far stay usable.

=============================================================================
ADDRESS RESOLUTION
=============================================================================

Accepted forms:

    "127.0.0.1:9"      "[::1]:9"      "localhost:13"     ":9" (any host)
    ("127.0.0.1", 9)   9 (any host)

getaddrinfo() may return several candidates (e.g. IPv4 and IPv6 for
"localhost"). They are tried in order and the first one that binds wins;
when none binds, the last error is raised.

=============================================================================
"""

import os
import socket
import logging
from typing import Any, List, Optional, Sequence, Tuple

from ..config import HarnessConfig
from ..errors import BuilderConsumedError
from .handshake import format_address
from .handler import as_factory
from .threaded import ThreadedEngine


logger = logging.getLogger(__name__)


AddrInfo = Tuple[int, int, int, str, Any]


def parse_address(address: Any) -> Tuple[Optional[str], int]:
    """
    Split a bind target into ``(host, port)``.

    ``host`` is None for "any interface".

    Raises:
        ValueError: The value is not a recognizable address.
    """
    if isinstance(address, bool):
        raise ValueError(f"Invalid address: {address!r}")

    if isinstance(address, int):
        host, port = None, address
    elif isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
    elif isinstance(address, str):
        host, sep, port = address.strip().rpartition(":")
        if not sep:
            raise ValueError(f"Address must look like host:port, got {address!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
    else:
        raise ValueError(f"Invalid address: {address!r}")

    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port in address {address!r}") from None

    if not 0 <= port < 65536:
        raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

    if host in ("", "*"):
        host = None

    return host, port


def resolve_address(address: Any, sock_type: int = socket.SOCK_STREAM) -> List[AddrInfo]:
    """
    Resolve a bind target into getaddrinfo() candidates for ``sock_type``.

    Raises:
        ValueError: Unparseable address.
        socket.gaierror: The host name does not resolve.
    """
    host, port = parse_address(address)
    return socket.getaddrinfo(host, port, socket.AF_UNSPEC, sock_type, 0, socket.AI_PASSIVE)


def _bind_first(candidates: Sequence[AddrInfo], setup) -> socket.socket:
    """Create, configure and bind a socket for the first candidate that works."""
    last_error: Optional[OSError] = None

    for family, sock_type, proto, _canonname, sockaddr in candidates:
        sock = socket.socket(family, sock_type, proto)
        try:
            setup(sock, sockaddr)
            return sock
        except OSError as e:
            sock.close()
            last_error = e
            logger.debug(f"Bind candidate {format_address(sockaddr)} failed: {e}")

    if last_error is None:
        raise OSError("address resolved to no candidates")
    raise last_error


def bind_stream_listener(address: Any, config: Optional[HarnessConfig] = None) -> socket.socket:
    """
    Bind and listen on a TCP socket for ``address``.

    SO_REUSEADDR is set on POSIX only. SO_REUSEPORT is never set: a second
    listener on the same address must fail, not silently share the port.
    On Windows SO_REUSEADDR would let another socket steal the port, so it
    is left off there.
    """
    config = config or HarnessConfig()

    def setup(sock: socket.socket, sockaddr: Any) -> None:
        if config.reuse_address and os.name == "posix":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(sockaddr)
        sock.listen(config.backlog)

    return _bind_first(resolve_address(address, socket.SOCK_STREAM), setup)


def bind_datagram_socket(address: Any, config: Optional[HarnessConfig] = None) -> socket.socket:
    """Bind a UDP socket for ``address``. No reuse options are set."""

    def setup(sock: socket.socket, sockaddr: Any) -> None:
        sock.bind(sockaddr)

    return _bind_first(resolve_address(address, socket.SOCK_DGRAM), setup)


class Builder:
    """
    Accumulates bound listeners, then builds an engine around them.

    Usage:
        engine = Builder().bind("0.0.0.0:9").bind("0.0.0.0:999").build(factory)
        engine.run()

        # Daytime over TCP and UDP, threaded engine
        engine = (Builder()
                  .bind("0.0.0.0:13")
                  .bind_datagram("0.0.0.0:13")
                  .build(daytime_factory))
    """

    def __init__(self, config: Optional[HarnessConfig] = None):
        self.config = config or HarnessConfig()
        self.config.validate()

        self._listeners: Tuple[socket.socket, ...] = ()
        self._datagram_sockets: Tuple[socket.socket, ...] = ()
        self._consumed = False

    @property
    def listeners(self) -> Tuple[socket.socket, ...]:
        """Bound stream listeners, in bind order."""
        return self._listeners

    @property
    def datagram_sockets(self) -> Tuple[socket.socket, ...]:
        return self._datagram_sockets

    @property
    def addresses(self) -> List[Any]:
        """Actual bound addresses (resolves port 0 to the real port)."""
        return [sock.getsockname() for sock in self._listeners + self._datagram_sockets]

    def _check_usable(self) -> None:
        if self._consumed:
            raise BuilderConsumedError(
                "this Builder was consumed; use the value returned by bind()/build()"
            )

    def _successor(
        self,
        listeners: Tuple[socket.socket, ...],
        datagram_sockets: Tuple[socket.socket, ...],
    ) -> "Builder":
        successor = Builder(self.config)
        successor._listeners = listeners
        successor._datagram_sockets = datagram_sockets
        self._consumed = True
        return successor

    def bind(self, address: Any) -> "Builder":
        """
        Bind a stream listener now and return a builder that also owns it.

        Raises:
            OSError: Resolution or binding failed. This builder is left
                     intact in that case.
            BuilderConsumedError: This builder was already consumed.
        """
        self._check_usable()

        try:
            listener = bind_stream_listener(address, self.config)
        except OSError as e:
            logger.error(f"Failed to bind {address!r}: {e}")
            raise

        logger.info(f"Listening on {format_address(listener.getsockname())} (stream)")
        return self._successor(self._listeners + (listener,), self._datagram_sockets)

    def bind_datagram(self, address: Any) -> "Builder":
        """Bind a datagram socket now (threaded engine only). See bind()."""
        self._check_usable()

        try:
            sock = bind_datagram_socket(address, self.config)
        except OSError as e:
            logger.error(f"Failed to bind {address!r} (datagram): {e}")
            raise

        logger.info(f"Listening on {format_address(sock.getsockname())} (datagram)")
        return self._successor(self._listeners, self._datagram_sockets + (sock,))

    def build(self, factory: Any, engine: Optional[type] = None):
        """
        Transfer the listeners and ``factory`` into an engine.

        Args:
            factory: A Factory, or a ``func(sender)`` returning a handler shape.
            engine: Engine class, ThreadedEngine (default) or ReactorEngine.

        Returns:
            The engine, ready for run().
        """
        self._check_usable()

        engine_cls = engine or ThreadedEngine
        built = engine_cls(
            listeners=self._listeners,
            factory=as_factory(factory),
            datagram_sockets=self._datagram_sockets,
            config=self.config,
        )
        self._consumed = True
        return built

    def close(self) -> None:
        """Close every socket of a builder that will never be built."""
        self._check_usable()
        for sock in self._listeners + self._datagram_sockets:
            sock.close()
        self._consumed = True

    def __enter__(self) -> "Builder":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._consumed:
            self.close()
        return False


def listen(address: Any, factory: Any, engine: Optional[type] = None,
           config: Optional[HarnessConfig] = None) -> None:
    """
    Bind one stream listener and serve it forever.

    Shortcut for ``Builder(config).bind(address).build(factory, engine).run()``.
    """
    Builder(config).bind(address).build(factory, engine).run()

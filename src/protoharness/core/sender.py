"""
=============================================================================
SENDER: THE WRITE HALF OF A CONNECTION CYCLE
=============================================================================

A Sender is handed to the factory before the handler exists, so handler
logic can keep it and write from inside its hooks (typically on_request).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Sender variants                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   StreamSender                     DatagramSender                   │
    │   ────────────                     ──────────────                   │
    │   owns the accepted TCP socket     shares the bound UDP socket      │
    │   send() -> sendall()              send() -> sendto(destination)    │
    │   release() -> shutdown + close    release() -> forget the socket   │
    │                                    (never closes it: the worker     │
    │                                     keeps receiving on it)          │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

The write capability only lives for the current cycle. The engine calls
release() after on_close() returns; later writes raise SenderReleasedError.

=============================================================================
"""

import socket
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from ..errors import SenderReleasedError
from .handshake import TransportKind


logger = logging.getLogger(__name__)


Message = Union[str, bytes, bytearray, memoryview]


def _to_bytes(message: Message) -> bytes:
    if isinstance(message, str):
        return message.encode("utf-8")
    return bytes(message)


class Sender(ABC):
    """Transport-bound write capability for one connection or datagram."""

    transport_kind: TransportKind

    def __init__(self, sock: socket.socket):
        self._socket: Optional[socket.socket] = sock
        self.bytes_sent = 0

    @property
    def active(self) -> bool:
        """True until the engine releases this sender."""
        return self._socket is not None

    def send(self, message: Message) -> int:
        """
        Write ``message`` to the peer.

        Strings are encoded as UTF-8.

        Returns:
            Number of bytes written.

        Raises:
            SenderReleasedError: The connection cycle already ended.
            OSError: The transport refused the write.
        """
        if self._socket is None:
            raise SenderReleasedError()

        data = _to_bytes(message)
        written = self._write(self._socket, data)
        self.bytes_sent += written
        return written

    @abstractmethod
    def _write(self, sock: socket.socket, data: bytes) -> int:
        pass

    @abstractmethod
    def release(self) -> None:
        """End the write capability. Idempotent."""
        pass


class StreamSender(Sender):
    """Sender over an accepted stream socket it exclusively owns."""

    transport_kind = TransportKind.STREAM

    def _write(self, sock: socket.socket, data: bytes) -> int:
        # sendall() keeps writing until everything is out or it fails
        sock.sendall(data)
        return len(data)

    def release(self) -> None:
        """
        Close the connection.

        shutdown(SHUT_WR) sends our FIN first so the peer sees a clean
        end-of-stream rather than a reset.
        """
        sock, self._socket = self._socket, None
        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already disconnected

        sock.close()


class DatagramSender(Sender):
    """Sender that replies to one fixed address over a shared datagram socket."""

    transport_kind = TransportKind.DATAGRAM

    def __init__(self, sock: socket.socket, destination: Any):
        super().__init__(sock)
        self.destination = destination

    def _write(self, sock: socket.socket, data: bytes) -> int:
        return sock.sendto(data, self.destination)

    def release(self) -> None:
        # The socket belongs to the datagram worker
        self._socket = None

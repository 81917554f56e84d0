"""
Handshake: where a connection or datagram came from.

A Handshake is captured once, right after accept()/recvfrom() returns and
before any handler hook runs. It is a frozen value; handlers may keep it
for as long as they like.

    STREAM (TCP)                          DATAGRAM (UDP)
    ────────────                          ──────────────
    peer_address  = conn.getpeername()    peer_address  = origin of datagram
    local_address = conn.getsockname()    local_address = bound socket name
"""

import socket
from enum import Enum
from dataclasses import dataclass
from typing import Any


class TransportKind(Enum):
    """How the unit of work reached us."""
    STREAM = "stream"
    DATAGRAM = "datagram"


@dataclass(frozen=True)
class Handshake:
    """
    Addressing metadata for one accepted connection or datagram.

    Attributes:
        peer_address: Remote address tuple, as returned by the socket layer.
        local_address: Our address tuple for this connection.
        transport_kind: STREAM or DATAGRAM.
    """
    peer_address: Any
    local_address: Any
    transport_kind: TransportKind = TransportKind.STREAM

    @classmethod
    def from_stream(cls, conn: socket.socket) -> "Handshake":
        """
        Read the handshake from an accepted stream socket.

        Raises:
            OSError: If the peer is already gone (e.g. it reset the
                     connection before we asked for its address).
        """
        return cls(
            peer_address=conn.getpeername(),
            local_address=conn.getsockname(),
            transport_kind=TransportKind.STREAM,
        )

    @classmethod
    def from_datagram(cls, sock: socket.socket, origin: Any) -> "Handshake":
        """Build the handshake for a datagram received on ``sock`` from ``origin``."""
        return cls(
            peer_address=origin,
            local_address=sock.getsockname(),
            transport_kind=TransportKind.DATAGRAM,
        )

    @property
    def is_stream(self) -> bool:
        return self.transport_kind is TransportKind.STREAM

    @property
    def peer_host(self) -> str:
        """Peer IP address as a string."""
        return self.peer_address[0]

    @property
    def peer_port(self) -> int:
        return self.peer_address[1]

    def __str__(self) -> str:
        return (
            f"{format_address(self.peer_address)} -> "
            f"{format_address(self.local_address)} ({self.transport_kind.value})"
        )


def format_address(address: Any) -> str:
    """Render an address tuple as ``host:port`` (``[host]:port`` for IPv6)."""
    if isinstance(address, tuple) and len(address) >= 2:
        host, port = address[0], address[1]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    return str(address)

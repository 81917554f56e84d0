"""
=============================================================================
CORE HARNESS COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SHARED CONTRACT                             │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Handshake   where a connection/datagram came from                  │
    │  Sender      how to write back (stream or datagram)                 │
    │  Handler     on_open / on_request / on_close, no-ops by default     │
    │  Factory     one Handler per accepted connection/datagram           │
    │  Builder     eager bind(), then build() an engine                   │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                   ┌────────────────┴────────────────┐
                   ▼                                 ▼
    ┌─────────────────────────────┐   ┌─────────────────────────────┐
    │  ThreadedEngine             │   │  ReactorEngine              │
    │  one thread per listener    │   │  one thread, epoll (ET)     │
    │  blocking accept/recvfrom   │   │  drain until would-block    │
    │  first error -> run raises  │   │  any error -> run raises    │
    │  TCP + UDP                  │   │  TCP only                   │
    └─────────────────────────────┘   └─────────────────────────────┘

=============================================================================
"""

from .handshake import Handshake, TransportKind, format_address
from .sender import Sender, StreamSender, DatagramSender
from .handler import (
    Handler,
    FunctionHandler,
    PairHandler,
    Factory,
    FunctionFactory,
    as_handler,
    as_factory,
    run_lifecycle,
    serve_stream,
    serve_datagram,
)
from .threaded import ThreadedEngine, GuardedFactory
from .reactor import ReactorEngine
from .builder import Builder, listen, parse_address, resolve_address

__all__ = [
    "Handshake",
    "TransportKind",
    "format_address",
    "Sender",
    "StreamSender",
    "DatagramSender",
    "Handler",
    "FunctionHandler",
    "PairHandler",
    "Factory",
    "FunctionFactory",
    "as_handler",
    "as_factory",
    "run_lifecycle",
    "serve_stream",
    "serve_datagram",
    "ThreadedEngine",
    "GuardedFactory",
    "ReactorEngine",
    "Builder",
    "listen",
    "parse_address",
    "resolve_address",
]

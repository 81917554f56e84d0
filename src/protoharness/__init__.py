"""
=============================================================================
PROTOHARNESS - A Minimal Harness for Well-Known Network Services
=============================================================================

Accepts connections or datagrams for small, well-known protocols
(discard, daytime) and dispatches connection-lifecycle events to your
handler logic. The same lifecycle contract runs on two interchangeable
concurrency engines:

    ThreadedEngine   one blocking worker thread per listener, TCP + UDP
    ReactorEngine    one thread, edge-triggered epoll, TCP

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    protoharness/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m protoharness)
    ├── config.py            # HarnessConfig dataclass, logging setup
    ├── errors.py            # Harness-specific exceptions
    ├── core/                # The lifecycle contract and the engines
    │   ├── handshake.py     # Handshake, TransportKind
    │   ├── sender.py        # StreamSender, DatagramSender
    │   ├── handler.py       # Handler, Factory, adapters, one cycle
    │   ├── builder.py       # Builder: eager bind, build an engine
    │   ├── threaded.py      # ThreadedEngine
    │   └── reactor.py       # ReactorEngine
    └── protocols/           # Services
        ├── discard.py       # RFC 863
        └── daytime.py       # RFC 867

=============================================================================
QUICK START
=============================================================================

    from protoharness import Builder, Handler, ReactorEngine

    class Greeter(Handler):
        def __init__(self, sender):
            self.sender = sender

        def on_open(self, handshake):
            print("open", handshake.peer_address)

        def on_request(self):
            self.sender.send("hello\\r\\n")

        def on_close(self):
            print("close")

    (Builder()
        .bind("127.0.0.1:9999")
        .bind("127.0.0.1:9998")
        .build(Greeter, ReactorEngine)
        .run())

    # Plain functions work too:
    Builder().bind(":9999").build(lambda sender: lambda: sender.send("hi")).run()

=============================================================================
"""

__version__ = "0.1.0"

from .config import HarnessConfig, configure_logging
from .errors import HarnessError, BuilderConsumedError, SenderReleasedError
from .core import (
    Handshake,
    TransportKind,
    Sender,
    StreamSender,
    DatagramSender,
    Handler,
    FunctionHandler,
    PairHandler,
    Factory,
    FunctionFactory,
    as_handler,
    as_factory,
    Builder,
    listen,
    ThreadedEngine,
    ReactorEngine,
)

__all__ = [
    "HarnessConfig",
    "configure_logging",
    "HarnessError",
    "BuilderConsumedError",
    "SenderReleasedError",
    "Handshake",
    "TransportKind",
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
    "Builder",
    "listen",
    "ThreadedEngine",
    "ReactorEngine",
    "__version__",
]

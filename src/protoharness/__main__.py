"""
=============================================================================
PROTOHARNESS CLI ENTRY POINT
=============================================================================

A small demonstration shell around the harness. The harness itself has no
CLI surface: embedding code picks addresses and engines in Python. This
module just wires the two bundled services to the command line.

=============================================================================
USAGE
=============================================================================

    # Discard on two ports, thread-per-listener engine
    python -m protoharness discard --bind 127.0.0.1:9999 --bind 127.0.0.1:9998

    # Same, single-threaded reactor
    python -m protoharness discard --bind 127.0.0.1:9999 --engine reactor

    # Daytime over TCP and UDP
    python -m protoharness daytime --bind 127.0.0.1:1313 --udp

    # Environment variables feed HarnessConfig
    HARNESS_BACKLOG=512 python -m protoharness discard --bind :9999

=============================================================================
"""

import sys
import argparse
import logging

from . import __version__
from .config import HarnessConfig, configure_logging
from .core import Builder, Handler, Handshake, ReactorEngine, ThreadedEngine
from .protocols import DiscardHandler, DaytimeHandler


logger = logging.getLogger("protoharness.cli")


ENGINES = {
    "threaded": ThreadedEngine,
    "reactor": ReactorEngine,
}


class ConsoleHandler(Handler):
    """Wraps a service handler and logs every open/close at info level."""

    def __init__(self, inner: Handler):
        self.inner = inner
        self.handshake = None

    def on_open(self, handshake: Handshake) -> None:
        self.handshake = handshake
        logger.info(f"Open  {handshake}")
        self.inner.on_open(handshake)

    def on_request(self) -> None:
        self.inner.on_request()

    def on_close(self) -> None:
        self.inner.on_close()
        logger.info(f"Close {self.handshake}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m protoharness",
        description="Serve discard or daytime on one or more addresses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m protoharness discard --bind 127.0.0.1:9999
  python -m protoharness discard --bind :9999 --bind :9998 --engine reactor
  python -m protoharness daytime --bind 127.0.0.1:1313 --udp
        """
    )

    parser.add_argument(
        "service",
        choices=["discard", "daytime"],
        help="Which service to run"
    )

    parser.add_argument(
        "--bind", "-b",
        action="append",
        required=True,
        metavar="HOST:PORT",
        help="Address to listen on (repeatable)"
    )

    parser.add_argument(
        "--engine", "-e",
        choices=sorted(ENGINES),
        default="threaded",
        help="Concurrency engine (default: threaded)"
    )

    parser.add_argument(
        "--udp",
        action="store_true",
        help="Also bind datagram sockets on every address (threaded engine only)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: HARNESS_LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"protoharness {__version__}"
    )

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.udp and args.engine == "reactor":
        parser.error("--udp requires the threaded engine")

    try:
        config = HarnessConfig.from_env()
        if args.log_level:
            config.log_level = args.log_level
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config.log_level)

    service = DiscardHandler if args.service == "discard" else DaytimeHandler

    def factory(sender):
        return ConsoleHandler(service(sender))

    try:
        builder = Builder(config)
        for address in args.bind:
            builder = builder.bind(address)
            if args.udp:
                # Same port as the listener, even when the port was 0
                builder = builder.bind_datagram(builder.listeners[-1].getsockname())

        engine = builder.build(factory, ENGINES[args.engine])
        engine.run()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

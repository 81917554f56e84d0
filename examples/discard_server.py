"""
Discard server on three ports, served by the single-threaded reactor.

Run:
    python examples/discard_server.py

Then hit it from another terminal:
    python examples/burst_client.py --count 300
"""

import logging

from protoharness import Builder, Handler, ReactorEngine, configure_logging


logger = logging.getLogger("examples.discard")


class TracingHandler(Handler):
    """Keeps the handshake so on_close can say which connection ended."""

    def __init__(self):
        self.handshake = None

    def on_open(self, handshake):
        logger.info(f"[{handshake.peer_address} -> {handshake.local_address}]: Open!")
        self.handshake = handshake

    def on_close(self):
        shake = self.handshake
        logger.info(f"[{shake.peer_address} -> {shake.local_address}]: Close!")


def main():
    configure_logging("INFO")

    (Builder()
        .bind("127.0.0.1:9009")
        .bind("127.0.0.1:9999")
        .bind("127.0.0.1:19999")
        .build(lambda sender: TracingHandler(), ReactorEngine)
        .run())


if __name__ == "__main__":
    main()

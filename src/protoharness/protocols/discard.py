"""
=============================================================================
DISCARD PROTOCOL (RFC 863)
=============================================================================

The server accepts connections and sends nothing back. Here the
connection is accepted, run through the lifecycle hooks, and released;
nothing is read and nothing is written.

    $ nc -v localhost 9
    Connection to localhost 9 port [tcp/discard] succeeded!
    $

=============================================================================
"""

import logging
from typing import Any, Optional

from ..config import HarnessConfig
from ..core import Builder, Handler, Handshake, Sender


logger = logging.getLogger(__name__)


DISCARD_PORT = 9


class DiscardHandler(Handler):
    """Remembers its handshake for logging; otherwise does nothing."""

    def __init__(self, sender: Optional[Sender] = None):
        self.sender = sender
        self.handshake: Optional[Handshake] = None

    def on_open(self, handshake: Handshake) -> None:
        self.handshake = handshake
        logger.debug(f"Discard open {handshake}")

    def on_close(self) -> None:
        logger.debug(f"Discard close {self.handshake}")


def discard_factory(sender: Sender) -> DiscardHandler:
    return DiscardHandler(sender)


def listen_discard(address: Any, engine: Optional[type] = None,
                   config: Optional[HarnessConfig] = None) -> None:
    """Serve discard on ``address`` with ``engine`` (threaded by default). Blocks."""
    Builder(config).bind(address).build(discard_factory, engine).run()

"""
=============================================================================
DAYTIME PROTOCOL (RFC 867)
=============================================================================

The server answers every connection (TCP) or datagram (UDP) with the
current date and time as a line of human-readable text, then closes.

    $ nc localhost 13
    Sat, 17 Oct 2026 10:00:00 +0200
    $

RFC 867 leaves the exact format open. We use the RFC 2822 form in local
time, the same one mail headers use.

=============================================================================
"""

import logging
from datetime import datetime
from typing import Any, Optional

from ..config import HarnessConfig
from ..core import Builder, Handler, Handshake, Sender, ThreadedEngine


logger = logging.getLogger(__name__)


DAYTIME_PORT = 13

# Fixed English names: strftime("%a") follows the process locale
_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def daytime_string(now: Optional[datetime] = None) -> str:
    """
    Format a moment as an RFC 2822 date, e.g. ``Sat, 17 Oct 2026 10:00:00 +0200``.

    Args:
        now: Moment to format. Naive values are taken as local time;
             aware values keep their own offset. Defaults to now.
    """
    if now is None:
        now = datetime.now()
    if now.tzinfo is None:
        now = now.astimezone()

    return (
        f"{_DAYS[now.weekday()]}, "
        f"{now.day:02d} {_MONTHS[now.month - 1]} {now.year:04d} "
        f"{now.hour:02d}:{now.minute:02d}:{now.second:02d} "
        f"{now.strftime('%z')}"
    )


class DaytimeHandler(Handler):
    """Writes one timestamp line on request."""

    def __init__(self, sender: Sender):
        self.sender = sender
        self.handshake: Optional[Handshake] = None

    def on_open(self, handshake: Handshake) -> None:
        self.handshake = handshake

    def on_request(self) -> None:
        stamp = daytime_string()
        self.sender.send(stamp + "\r\n")
        logger.debug(f"Sent daytime {stamp!r} to {self.handshake}")


def daytime_factory(sender: Sender) -> DaytimeHandler:
    return DaytimeHandler(sender)


def bind_daytime(address: Any, config: Optional[HarnessConfig] = None) -> Builder:
    """
    Bind a TCP listener and a UDP socket on one address.

    The datagram socket binds to the address the listener actually got,
    so port 0 yields the same ephemeral port for both transports.
    """
    builder = Builder(config).bind(address)
    return builder.bind_datagram(builder.listeners[-1].getsockname())


def listen_daytime(address: Any, config: Optional[HarnessConfig] = None) -> None:
    """
    Serve daytime over TCP and UDP on ``address`` with the threaded engine.

    Blocks forever; raises the first worker error.
    """
    bind_daytime(address, config).build(daytime_factory, ThreadedEngine).run()

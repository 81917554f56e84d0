"""Well-known services built on the lifecycle contract."""

from .discard import DISCARD_PORT, DiscardHandler, discard_factory, listen_discard
from .daytime import DAYTIME_PORT, DaytimeHandler, bind_daytime, daytime_factory, daytime_string, listen_daytime

__all__ = [
    "DISCARD_PORT",
    "DiscardHandler",
    "discard_factory",
    "listen_discard",
    "DAYTIME_PORT",
    "DaytimeHandler",
    "bind_daytime",
    "daytime_factory",
    "daytime_string",
    "listen_daytime",
]

"""
=============================================================================
HARNESS CONFIGURATION
=============================================================================

Centralized tuning knobs for listeners and engines.

The harness has no configuration file: addresses and the engine choice
are supplied in code by whoever embeds it. What lives here are the
socket-level details every engine needs to agree on.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Explicit HarnessConfig(...) passed to Builder / engines        │
    │   2. Environment variables via HarnessConfig.from_env()             │
    │      └── HARNESS_BACKLOG=512 python -m protoharness discard ...     │
    │   3. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
import logging
from dataclasses import dataclass


@dataclass
class HarnessConfig:
    """
    Configuration shared by the builder and both engines.

    NETWORK SETTINGS
    - backlog, reuse_address

    DATAGRAM SETTINGS
    - datagram_buffer_size

    REACTOR SETTINGS
    - max_events

    LOGGING
    - log_level
    """

    backlog: int = 128
    """
    Size of the kernel accept queue for each stream listener.
    Connections beyond this are refused while nobody accepts.
    """

    reuse_address: bool = True
    """
    Set SO_REUSEADDR on stream listeners (POSIX only).
    Lets a restarted service rebind while old sockets sit in TIME_WAIT.
    It does NOT allow two live listeners on one address.
    """

    datagram_buffer_size: int = 1024
    """
    Bytes read per datagram. Longer datagrams are truncated; the payload
    is never passed to handlers anyway.
    """

    max_events: int = 1024
    """Upper bound on readiness events fetched per reactor wait."""

    log_level: str = "INFO"
    """Logging level used by configure_logging() (DEBUG, INFO, ...)."""

    @classmethod
    def from_env(cls) -> "HarnessConfig":
        """
        Create configuration from environment variables.

        HARNESS_BACKLOG          Listen backlog (default: 128)
        HARNESS_REUSE_ADDRESS    "0"/"false" disables SO_REUSEADDR
        HARNESS_DATAGRAM_BUFFER  Datagram read size (default: 1024)
        HARNESS_MAX_EVENTS       Reactor batch size (default: 1024)
        HARNESS_LOG_LEVEL        Logging level (default: INFO)
        """
        reuse = os.getenv("HARNESS_REUSE_ADDRESS", "1").strip().lower()
        return cls(
            backlog=int(os.getenv("HARNESS_BACKLOG", "128")),
            reuse_address=reuse not in ("0", "false", "no", "off"),
            datagram_buffer_size=int(os.getenv("HARNESS_DATAGRAM_BUFFER", "1024")),
            max_events=int(os.getenv("HARNESS_MAX_EVENTS", "1024")),
            log_level=os.getenv("HARNESS_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Fail fast on values no socket call would accept."""
        if self.backlog < 0:
            raise ValueError(f"backlog must be >= 0, got {self.backlog}")

        if self.datagram_buffer_size < 1:
            raise ValueError("datagram_buffer_size must be >= 1")

        if self.max_events < 1:
            raise ValueError("max_events must be >= 1")

        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for command-line use.

    Library code never calls this; embedding applications keep control of
    their own logging setup.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("protoharness").setLevel(numeric)

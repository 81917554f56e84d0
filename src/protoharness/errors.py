"""
Exceptions raised by the harness itself.

Transport failures (bind, accept, handshake address lookup, write) are
plain ``OSError`` subclasses and are never wrapped. The classes here cover
misuse of the harness objects.
"""

import errno


class HarnessError(Exception):
    """Base class for harness-specific errors."""


class BuilderConsumedError(HarnessError, RuntimeError):
    """
    Raised when a builder is used after ``bind()`` or ``build()`` consumed it.

    Every successful ``bind()`` hands its listeners to a new builder, and
    ``build()`` hands them to an engine. The old value must not be reused,
    otherwise two owners would close the same sockets.
    """


class SenderReleasedError(HarnessError, OSError):
    """
    Raised when a Sender is used after its connection cycle ended.

    It is an ``OSError`` (``EPIPE``) so callers that already handle write
    failures handle this case too.
    """

    def __init__(self, message: str = "sender used after its connection was released"):
        super().__init__(errno.EPIPE, message)

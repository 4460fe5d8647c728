"""Relay exceptions.

Recoverable protocol faults (stream dropped, invalid wire type) are not
exceptions: the session returns them as a FaultSignal. Everything raised
from here reaches the supervisor's retry loop.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay failures."""
    pass


class ConnectionFault(RelayError):
    """Upstream connection failed or reported an unclassified error."""

    def __init__(self, message: str, code: Optional[int] = None, details: str = ""):
        super().__init__(message)
        self.code = code
        self.details = details


class StreamExhausted(ConnectionFault):
    """Upstream iterator ended without a resume signal."""
    pass


class IntegrityFault(RelayError):
    """Upstream data cannot be trusted for this deployment."""
    pass


class ChainMismatchError(IntegrityFault):
    """Data unit came from a different network than configured."""

    def __init__(self, observed: Optional[int], expected: int):
        super().__init__(
            f"Transaction stream returned a chainId of {observed}, "
            f"but expected chainId={expected}"
        )
        self.observed = observed
        self.expected = expected


__all__ = [
    "RelayError",
    "ConnectionFault",
    "StreamExhausted",
    "IntegrityFault",
    "ChainMismatchError",
]

"""Protocol definitions for the stream relay.

Components depend on these structural interfaces rather than on concrete
transports, so the supervisor and session never know whether they are
talking to gRPC, Redis, a websocket group or an SSE connection.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from stream_relay.stream.types import DeliveredEvent, StreamUnit


# =============================================================================
# LOGGING
# =============================================================================

@runtime_checkable
class LoggerProtocol(Protocol):
    """Structured logging interface."""

    def info(self, message: str, **kwargs: Any) -> None: ...
    def debug(self, message: str, **kwargs: Any) -> None: ...
    def warning(self, message: str, **kwargs: Any) -> None: ...
    def error(self, message: str, **kwargs: Any) -> None: ...
    def bind(self, **kwargs: Any) -> "LoggerProtocol": ...


# =============================================================================
# UPSTREAM
# =============================================================================

@runtime_checkable
class TransactionSourceProtocol(Protocol):
    """Ordered, versioned transaction feed.

    Each call to ``stream`` opens one physical connection starting at
    ``starting_version`` and yields units until the connection ends.
    """

    def stream(self, starting_version: int) -> AsyncIterator["StreamUnit"]: ...


# =============================================================================
# DELIVERY
# =============================================================================

@runtime_checkable
class DeliverySinkProtocol(Protocol):
    """Publish target for delivered events.

    Implementations should tolerate rapid and concurrent calls. Errors are
    contained by the fan-out worker that drives the sink.
    """

    name: str

    async def publish(self, event: "DeliveredEvent") -> None: ...
    async def close(self) -> None: ...


__all__ = [
    "LoggerProtocol",
    "TransactionSourceProtocol",
    "DeliverySinkProtocol",
]

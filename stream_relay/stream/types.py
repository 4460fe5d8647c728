"""Value types flowing through the relay.

Upstream units are normalized into these dataclasses by the source adapter,
so the session and supervisor never touch protobuf messages directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class UnitKind(str, Enum):
    """Tag of one item received from the upstream feed."""
    DATA = "data"
    ERROR = "error"
    STATUS = "status"
    METADATA = "metadata"


class FaultSignal(str, Enum):
    """Outcome a stream session returns to the supervisor."""
    RESUME_SAME_CURSOR = "resume_same_cursor"
    RESUME_NEXT_CURSOR = "resume_next_cursor"


class RelayState(str, Enum):
    """Supervisor lifecycle states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RETRY_BACKOFF = "retry_backoff"
    ABANDONED = "abandoned"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RawEvent:
    """Event attached to a transaction, identified by its type string."""
    type_str: str
    data: str  # JSON-encoded payload


@dataclass(frozen=True)
class Transaction:
    """One versioned upstream transaction."""
    version: int
    timestamp: int  # unix seconds
    events: Tuple[RawEvent, ...] = ()


@dataclass(frozen=True)
class StreamUnit:
    """One unit received from the upstream feed.

    Data units carry ``chain_id`` and ``transactions``; error and status
    units carry ``code`` and ``details``; metadata units carry ``metadata``.
    """
    kind: UnitKind
    chain_id: Optional[int] = None
    transactions: Tuple[Transaction, ...] = ()
    code: int = 0
    details: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def data(cls, chain_id: Optional[int], transactions) -> "StreamUnit":
        return cls(kind=UnitKind.DATA, chain_id=chain_id, transactions=tuple(transactions))

    @classmethod
    def error(cls, code: int, details: str) -> "StreamUnit":
        return cls(kind=UnitKind.ERROR, code=code, details=details)

    @classmethod
    def status(cls, code: int, details: str) -> "StreamUnit":
        return cls(kind=UnitKind.STATUS, code=code, details=details)


@dataclass(frozen=True)
class DeliveredEvent:
    """Normalized record handed to every delivery sink."""
    version: int
    event_type: str
    event_data: Any
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "event_type": self.event_type,
            "event_data": self.event_data,
            "timestamp": self.timestamp,
        }

    def envelope(self) -> Dict[str, Any]:
        """Wire payload shared by all sinks."""
        return {"type": "account_event", "data": self.to_dict()}


__all__ = [
    "UnitKind",
    "FaultSignal",
    "RelayState",
    "RawEvent",
    "Transaction",
    "StreamUnit",
    "DeliveredEvent",
]

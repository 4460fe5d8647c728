"""Upstream consumption: classifier, cursor, session and supervisor."""

from stream_relay.stream.classifier import EventClassifier, InterestTable
from stream_relay.stream.cursor import CursorState
from stream_relay.stream.errors import (
    ChainMismatchError,
    ConnectionFault,
    IntegrityFault,
    RelayError,
    StreamExhausted,
)
from stream_relay.stream.session import StreamSession
from stream_relay.stream.supervisor import ReconnectSupervisor
from stream_relay.stream.types import (
    DeliveredEvent,
    FaultSignal,
    RawEvent,
    RelayState,
    StreamUnit,
    Transaction,
    UnitKind,
)

__all__ = [
    "EventClassifier",
    "InterestTable",
    "CursorState",
    "ChainMismatchError",
    "ConnectionFault",
    "IntegrityFault",
    "RelayError",
    "StreamExhausted",
    "StreamSession",
    "ReconnectSupervisor",
    "DeliveredEvent",
    "FaultSignal",
    "RawEvent",
    "RelayState",
    "StreamUnit",
    "Transaction",
    "UnitKind",
]

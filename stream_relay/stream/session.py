"""StreamSession - one physical connection to the transaction feed.

Consumes units from the upstream source starting at a supplied cursor,
classifies every embedded event and hands matches to the fan-out.

Exit paths:
    return FaultSignal.RESUME_SAME_CURSOR   stream dropped (error or status unit)
    return FaultSignal.RESUME_NEXT_CURSOR   status 13 "invalid wire type"
    raise ConnectionFault                   unclassified error unit, exhausted feed
    raise ChainMismatchError                data from the wrong network
    raise <anything else>                   transport failure inside the source

Architecture:
    TransactionSource
           | StreamUnit
    StreamSession (this module) --> EventClassifier
           | DeliveredEvent
    FanOut --> DeliverySink x N
"""

from __future__ import annotations

from typing import Callable, Optional, TYPE_CHECKING

from stream_relay.logging import get_component_logger
from stream_relay.observability.metrics import record_event_matched
from stream_relay.protocols import LoggerProtocol, TransactionSourceProtocol
from stream_relay.stream.classifier import EventClassifier
from stream_relay.stream.errors import ChainMismatchError, ConnectionFault, StreamExhausted
from stream_relay.stream.types import (
    DeliveredEvent,
    FaultSignal,
    StreamUnit,
    Transaction,
    UnitKind,
)

if TYPE_CHECKING:
    from stream_relay.sinks.fanout import FanOut

# gRPC status codes the relay recognizes
STATUS_OK = 0
STATUS_INTERNAL = 13
STATUS_UNAVAILABLE = 14

CONNECTION_DROPPED = "Connection dropped"
INVALID_WIRE_TYPE = "invalid wire type"


def is_connection_dropped(code: int, details: str) -> bool:
    return code == STATUS_UNAVAILABLE and details == CONNECTION_DROPPED


def is_invalid_wire_type(code: int, details: str) -> bool:
    return code == STATUS_INTERNAL and INVALID_WIRE_TYPE in (details or "")


class StreamSession:
    """Drives the classify -> publish loop for one upstream connection.

    The session holds no cursor of its own: it starts wherever the
    supervisor tells it to and reports each processed version through
    ``on_progress``.

    Usage:
        session = StreamSession(source, classifier, fanout, expected_chain_id=2)
        signal = await session.run(cursor.position)
    """

    def __init__(
        self,
        source: TransactionSourceProtocol,
        classifier: EventClassifier,
        fanout: "FanOut",
        *,
        expected_chain_id: int,
        on_progress: Optional[Callable[[int], None]] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._source = source
        self._classifier = classifier
        self._fanout = fanout
        self._expected_chain_id = expected_chain_id
        self._on_progress = on_progress
        self._logger = get_component_logger("StreamSession", logger)

    async def run(self, cursor: int) -> FaultSignal:
        """Consume the feed from ``cursor`` until a fault occurs.

        Args:
            cursor: Version to start streaming from.

        Returns:
            The resume signal for a recoverable protocol fault.

        Raises:
            ConnectionFault: Unclassified error unit or exhausted feed.
            ChainMismatchError: Data unit from the wrong network.
        """
        stream = self._source.stream(cursor)
        try:
            async for unit in stream:
                signal = self._handle_unit(unit, cursor)
                if signal is not None:
                    return signal
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        raise StreamExhausted(f"Transaction stream ended (started at version {cursor})")

    def _handle_unit(self, unit: StreamUnit, cursor: int) -> Optional[FaultSignal]:
        if unit.kind == UnitKind.DATA:
            self._process_data(unit, cursor)
            return None

        if unit.kind == UnitKind.ERROR:
            self._logger.error(
                "stream_error",
                code=unit.code,
                details=unit.details,
                cursor=cursor,
            )
            if is_connection_dropped(unit.code, unit.details):
                self._logger.info("stream_connection_dropped", cursor=cursor)
                return FaultSignal.RESUME_SAME_CURSOR
            raise ConnectionFault(
                f"Stream error {unit.code}: {unit.details}",
                code=unit.code,
                details=unit.details,
            )

        if unit.kind == UnitKind.STATUS:
            if unit.code == STATUS_OK:
                return None
            self._logger.error(
                "stream_status_error",
                code=unit.code,
                details=unit.details,
                cursor=cursor,
            )
            if is_invalid_wire_type(unit.code, unit.details):
                self._logger.info("stream_invalid_wire_type", cursor=cursor)
                return FaultSignal.RESUME_NEXT_CURSOR
            if is_connection_dropped(unit.code, unit.details):
                self._logger.info("stream_connection_dropped", cursor=cursor)
                return FaultSignal.RESUME_SAME_CURSOR
            # Unclassified status noise: keep consuming
            return None

        # METADATA
        return None

    def _process_data(self, unit: StreamUnit, cursor: int) -> None:
        if unit.chain_id != self._expected_chain_id:
            raise ChainMismatchError(unit.chain_id, self._expected_chain_id)

        self._logger.debug(
            "stream_batch_received",
            transactions=len(unit.transactions),
            cursor=cursor,
        )

        for txn in unit.transactions:
            self._process_transaction(txn)
            if self._on_progress is not None:
                self._on_progress(txn.version)

    def _process_transaction(self, txn: Transaction) -> None:
        for raw in txn.events:
            if not self._classifier.is_interesting(raw):
                continue
            event = DeliveredEvent(
                version=txn.version,
                event_type=raw.type_str,
                event_data=self._classifier.decode(raw),
                timestamp=txn.timestamp,
            )
            self._logger.info(
                "event_matched",
                version=txn.version,
                event_type=raw.type_str,
            )
            record_event_matched(raw.type_str)
            self._fanout.publish(event)


__all__ = [
    "StreamSession",
    "is_connection_dropped",
    "is_invalid_wire_type",
    "CONNECTION_DROPPED",
    "INVALID_WIRE_TYPE",
]

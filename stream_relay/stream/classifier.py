"""Event classification against a fixed interest table.

The table holds fully-qualified Move event type identifiers of the form
``{address}::{module}::{name}``. Matching is exact string equality.

Usage:
    table = InterestTable.for_module(
        "0xf57f...", "truthoracle", ["MarketCreated", "buy_shares"],
    )
    classifier = EventClassifier(table, logger)
    if classifier.is_interesting(raw_event):
        data = classifier.decode(raw_event)
"""

from __future__ import annotations

import json
from typing import Any, FrozenSet, Iterable, Optional

from stream_relay.logging import get_component_logger
from stream_relay.protocols import LoggerProtocol
from stream_relay.stream.types import RawEvent

DEFAULT_EVENT_NAMES = ("MarketCreated", "buy_shares", "withdraw_payout")


class InterestTable:
    """Immutable set of event type identifiers the relay forwards."""

    def __init__(self, type_identifiers: Iterable[str]):
        self._entries: FrozenSet[str] = frozenset(type_identifiers)

    @classmethod
    def for_module(
        cls,
        address: str,
        module: str,
        event_names: Iterable[str] = DEFAULT_EVENT_NAMES,
    ) -> "InterestTable":
        return cls(f"{address}::{module}::{name}" for name in event_names)

    def __contains__(self, type_str: object) -> bool:
        return type_str in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> FrozenSet[str]:
        return self._entries


class EventClassifier:
    """Decides whether a raw event belongs to the interest table.

    Never raises: a payload that is not valid JSON is logged and treated
    as a non-match.
    """

    def __init__(self, table: InterestTable, logger: Optional[LoggerProtocol] = None):
        self._table = table
        self._logger = get_component_logger("EventClassifier", logger)

    @property
    def table(self) -> InterestTable:
        return self._table

    def is_interesting(self, event: RawEvent) -> bool:
        if event.type_str not in self._table:
            return False
        try:
            json.loads(event.data)
        except (TypeError, ValueError) as e:
            self._logger.error(
                "event_decode_failed",
                event_type=event.type_str,
                error=str(e),
            )
            return False
        return True

    def decode(self, event: RawEvent) -> Any:
        """Return the decoded payload of an event already classified as a match."""
        return json.loads(event.data)


__all__ = ["InterestTable", "EventClassifier", "DEFAULT_EVENT_NAMES"]

"""Resume cursor carried across reconnect attempts."""

from __future__ import annotations

from stream_relay.observability.metrics import set_cursor_position


class CursorState:
    """Next transaction version to request from the upstream feed.

    Only moves forward, except that callers may simply reuse the current
    position to re-request the in-flight batch. Every move is mirrored to
    the ``stream_relay_cursor_position`` gauge.
    """

    def __init__(self, position: int = 0):
        if position < 0:
            raise ValueError(f"Cursor position must be >= 0, got {position}")
        self._position = position
        set_cursor_position(position)

    @property
    def position(self) -> int:
        return self._position

    def advance_past(self, version: int) -> None:
        """Record that ``version`` has been fully processed."""
        if version + 1 > self._position:
            self._position = version + 1
            set_cursor_position(self._position)

    def skip(self) -> int:
        """Step over one unreadable version and return the new position."""
        self._position += 1
        set_cursor_position(self._position)
        return self._position

    def __repr__(self) -> str:
        return f"CursorState(position={self._position})"


__all__ = ["CursorState"]

"""ReconnectSupervisor - the relay's top-level control loop.

Wraps StreamSession with resume, fixed-delay retry and abandonment:

    RESUME_SAME_CURSOR  -> reconnect now, same cursor, retry counter 0
    RESUME_NEXT_CURSOR  -> reconnect now, cursor + 1, retry counter 0
    any exception       -> retry counter + 1, sleep retry_delay, reconnect
                           at the same cursor; abandon once the counter
                           has reached max_retries

Abandonment ends the loop: run() returns RelayState.ABANDONED and the
supervisor does no further work. It never raises into the host process.
"""

from __future__ import annotations

import asyncio
from typing import Optional, TYPE_CHECKING

from stream_relay.logging import get_component_logger, relay_scope
from stream_relay.observability.metrics import (
    record_abandonment,
    record_connection_attempt,
    record_resume,
    record_retry,
)
from stream_relay.protocols import LoggerProtocol
from stream_relay.stream.cursor import CursorState
from stream_relay.stream.errors import IntegrityFault
from stream_relay.stream.types import FaultSignal, RelayState

if TYPE_CHECKING:
    from stream_relay.stream.session import StreamSession

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 5.0  # seconds


class ReconnectSupervisor:
    """Bounded-retry reconnection loop around a stream session.

    Owns the cursor and the retry counter; the session only reads the
    cursor value it is started with.

    Usage:
        cursor = CursorState(settings.starting_version)
        session = StreamSession(..., on_progress=cursor.advance_past)
        supervisor = ReconnectSupervisor(session, cursor, max_retries=5)
        final_state = await supervisor.run()
    """

    def __init__(
        self,
        session: "StreamSession",
        cursor: CursorState,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        abandon_on_integrity_fault: bool = False,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        """Initialize supervisor.

        Args:
            session: Stream session to (re)start on every attempt.
            cursor: Resume cursor, advanced by the session's progress reports.
            max_retries: Consecutive connectivity faults tolerated.
            retry_delay: Fixed delay in seconds between retries.
            abandon_on_integrity_fault: Abandon at once on wrong-network data
                instead of retrying.
            logger: Logger for DI (uses context logger if not provided).
        """
        self._session = session
        self._cursor = cursor
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._abandon_on_integrity_fault = abandon_on_integrity_fault
        self._logger = get_component_logger("ReconnectSupervisor", logger)

        self._state = RelayState.IDLE
        self._retry_count = 0
        self._attempts = 0
        self._stop = asyncio.Event()

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def cursor(self) -> CursorState:
        return self._cursor

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def attempts(self) -> int:
        """Total connection attempts made by this supervisor."""
        return self._attempts

    # =========================================================================
    # Control loop
    # =========================================================================

    def stop(self) -> None:
        """Ask the loop to exit at its next suspension point."""
        self._stop.set()

    async def run(self) -> RelayState:
        """Run until abandoned or stopped.

        Returns:
            The terminal state (ABANDONED or STOPPED).
        """
        try:
            while not self._stop.is_set():
                self._attempts += 1
                record_connection_attempt()
                position = self._cursor.position
                self._state = RelayState.CONNECTING
                self._logger.info(
                    "relay_stream_starting",
                    cursor=position,
                    attempt=self._retry_count + 1,
                    max_retries=self._max_retries,
                )

                try:
                    with relay_scope(cursor=position, attempt=self._attempts):
                        self._state = RelayState.STREAMING
                        signal = await self._session.run(position)
                except asyncio.CancelledError:
                    raise
                except IntegrityFault as e:
                    self._logger.error(
                        "relay_integrity_fault",
                        error=str(e),
                        cursor=position,
                    )
                    if self._abandon_on_integrity_fault:
                        return self._abandon("integrity_fault")
                    if not await self._schedule_retry("integrity"):
                        break
                except Exception as e:
                    self._logger.error(
                        "relay_stream_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        cursor=position,
                    )
                    if not await self._schedule_retry("connection"):
                        break
                else:
                    self._resume(signal, position)
        except asyncio.CancelledError:
            self._state = RelayState.STOPPED
            self._logger.info("relay_cancelled", cursor=self._cursor.position)
            raise

        if self._state != RelayState.ABANDONED:
            self._state = RelayState.STOPPED
            self._logger.info("relay_stopped", cursor=self._cursor.position)
        return self._state

    def _resume(self, signal: FaultSignal, position: int) -> None:
        self._retry_count = 0
        record_resume(signal.value)
        if signal == FaultSignal.RESUME_NEXT_CURSOR:
            new_position = self._cursor.skip()
            self._logger.info(
                "relay_skipping_version",
                from_version=position,
                to_version=new_position,
            )
        else:
            self._logger.info(
                "relay_resuming",
                cursor=self._cursor.position,
            )

    async def _schedule_retry(self, fault: str) -> bool:
        """Back off before the next attempt.

        Returns:
            True to reconnect, False when the loop must end (abandoned or
            stopped during the wait).
        """
        if self._retry_count >= self._max_retries:
            record_retry(fault, "exhausted")
            self._abandon("max_retries_reached")
            return False

        self._retry_count += 1
        record_retry(fault, "scheduled")
        self._state = RelayState.RETRY_BACKOFF
        self._logger.warning(
            "relay_retry_scheduled",
            delay_ms=int(self._retry_delay * 1000),
            retry=self._retry_count,
            max_retries=self._max_retries,
            cursor=self._cursor.position,
        )
        return not await self._wait_for_stop(self._retry_delay)

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _abandon(self, reason: str) -> RelayState:
        self._state = RelayState.ABANDONED
        record_abandonment(reason)
        self._logger.error(
            "relay_abandoned",
            reason=reason,
            retries=self._retry_count,
            cursor=self._cursor.position,
            hint="Check the stream endpoint and API key; restart required",
        )
        return self._state


__all__ = ["ReconnectSupervisor", "DEFAULT_MAX_RETRIES", "DEFAULT_RETRY_DELAY"]

"""StreamRelay - lifecycle owner for one relay instance.

Holds the supervisor task and the delivery fan-out as ordinary fields.
One instance is built per process (see wiring.create_relay) and started
by the first inbound trigger; later triggers are no-ops.

Usage:
    relay = create_relay(settings)
    relay.start()            # idempotent
    ...
    await relay.stop()       # on process shutdown
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, TYPE_CHECKING

from stream_relay.logging import get_component_logger
from stream_relay.protocols import DeliverySinkProtocol, LoggerProtocol
from stream_relay.stream.types import RelayState

if TYPE_CHECKING:
    from stream_relay.sinks.broadcast import BroadcastSink
    from stream_relay.sinks.fanout import FanOut
    from stream_relay.sinks.websocket import WebSocketGroupSink
    from stream_relay.stream.supervisor import ReconnectSupervisor


class StreamRelay:
    """Starts, stops and reports on the reconnect supervisor."""

    def __init__(
        self,
        supervisor: "ReconnectSupervisor",
        fanout: "FanOut",
        *,
        broadcast: Optional["BroadcastSink"] = None,
        websocket_group: Optional["WebSocketGroupSink"] = None,
        sse_enabled: bool = False,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._supervisor = supervisor
        self._fanout = fanout
        self.broadcast = broadcast
        self.websocket_group = websocket_group
        self.sse_enabled = sse_enabled
        self._logger = get_component_logger("StreamRelay", logger)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> RelayState:
        return self._supervisor.state

    @property
    def fanout(self) -> "FanOut":
        return self._fanout

    def start(self) -> bool:
        """Start the relay loop in the background.

        Returns:
            True if this call started the loop, False if it was already
            running or has been abandoned.
        """
        if self.running:
            return False
        if self._supervisor.state == RelayState.ABANDONED:
            self._logger.warning("relay_start_refused", reason="abandoned, restart required")
            return False

        self._task = asyncio.create_task(self._run())
        self._logger.info("relay_started", cursor=self._supervisor.cursor.position)
        return True

    async def stop(self) -> None:
        """Stop the loop and close every sink."""
        self._supervisor.stop()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self._fanout.close()
        self._logger.info("relay_shutdown", cursor=self._supervisor.cursor.position)

    async def _run(self) -> None:
        final_state = await self._supervisor.run()
        if final_state == RelayState.ABANDONED:
            # Subscribers see their channels end; no further delivery.
            await self._fanout.close()

    # =========================================================================
    # Per-connection subscribers (SSE)
    # =========================================================================

    async def add_subscriber(self, sink: DeliverySinkProtocol) -> bool:
        """Attach a per-connection sink.

        Returns:
            False if the relay has been abandoned; the sink is closed at
            once so its channel ends instead of waiting for events.
        """
        if self.state == RelayState.ABANDONED:
            await sink.close()
            self._logger.info("subscriber_refused", sink=sink.name, reason="abandoned")
            return False
        self._fanout.add_sink(sink)
        return True

    async def remove_subscriber(self, sink: DeliverySinkProtocol) -> None:
        await self._fanout.remove_sink(sink)
        await sink.close()

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "cursor": self._supervisor.cursor.position,
            "retry_count": self._supervisor.retry_count,
            "attempts": self._supervisor.attempts,
            "sinks": self._fanout.stats(),
        }


__all__ = ["StreamRelay"]

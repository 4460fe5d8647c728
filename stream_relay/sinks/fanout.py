"""FanOut - non-blocking, per-sink delivery of matched events.

Every sink gets its own bounded queue and worker task. The session calls
``publish()`` synchronously; it never awaits a sink, so a slow or dead
sink cannot stall the stream or the other sinks. A full queue drops its
oldest event to make room for the newest one.

Architecture:
    StreamSession.publish(event)
           | put_nowait per lane
    [queue] -> worker -> BroadcastSink
    [queue] -> worker -> WebSocketGroupSink
    [queue] -> worker -> ServerPushSink (one per SSE client)
"""

from __future__ import annotations

import asyncio
import contextvars
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from stream_relay.logging import get_component_logger
from stream_relay.observability.metrics import record_sink_event
from stream_relay.protocols import DeliverySinkProtocol, LoggerProtocol
from stream_relay.stream.types import DeliveredEvent

DEFAULT_QUEUE_SIZE = 1000


@dataclass
class _SinkLane:
    sink: DeliverySinkProtocol
    queue: asyncio.Queue
    task: Optional[asyncio.Task] = None


class FanOut:
    """Independent delivery of each event to every registered sink.

    Usage:
        fanout = FanOut([broadcast_sink, websocket_sink], logger=logger)
        fanout.publish(event)        # returns immediately
        await fanout.flush()         # wait until every lane is drained
        await fanout.close()         # drain, stop workers, close sinks
    """

    def __init__(
        self,
        sinks: Iterable[DeliverySinkProtocol] = (),
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        drain_timeout: float = 5.0,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._queue_size = queue_size
        self._drain_timeout = drain_timeout
        self._logger = get_component_logger("FanOut", logger)
        self._lanes: Dict[int, _SinkLane] = {}
        for sink in sinks:
            self.add_sink(sink)

    # =========================================================================
    # Registration
    # =========================================================================

    def add_sink(self, sink: DeliverySinkProtocol) -> None:
        key = id(sink)
        if key in self._lanes:
            return
        self._lanes[key] = _SinkLane(sink=sink, queue=asyncio.Queue(maxsize=self._queue_size))
        self._logger.debug("sink_added", sink=sink.name, sinks=len(self._lanes))

    async def remove_sink(self, sink: DeliverySinkProtocol) -> None:
        """Detach a sink without closing it (the owner closes it)."""
        lane = self._lanes.pop(id(sink), None)
        if lane is None:
            return
        await self._stop_worker(lane)
        self._logger.debug("sink_removed", sink=sink.name, sinks=len(self._lanes))

    @property
    def sinks(self) -> List[DeliverySinkProtocol]:
        return [lane.sink for lane in self._lanes.values()]

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Lane count and queued events per sink name.

        Delivery outcomes are exported as ``stream_relay_sink_events_total``.
        """
        stats: Dict[str, Dict[str, int]] = {}
        for lane in self._lanes.values():
            entry = stats.setdefault(lane.sink.name, {"lanes": 0, "pending": 0})
            entry["lanes"] += 1
            entry["pending"] += lane.queue.qsize()
        return stats

    # =========================================================================
    # Delivery
    # =========================================================================

    def publish(self, event: DeliveredEvent) -> None:
        """Queue ``event`` for every sink. Never blocks, never raises."""
        for lane in list(self._lanes.values()):
            if lane.task is None or lane.task.done():
                # Empty context: session log bindings stay out of sink logs
                lane.task = contextvars.Context().run(asyncio.create_task, self._drain(lane))
            try:
                lane.queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop oldest item to make room for most recent event
                try:
                    lane.queue.get_nowait()
                    lane.queue.task_done()
                except asyncio.QueueEmpty:
                    pass
                record_sink_event(lane.sink.name, "dropped")
                self._logger.warning(
                    "sink_queue_full",
                    sink=lane.sink.name,
                    version=event.version,
                )
                lane.queue.put_nowait(event)

    async def _drain(self, lane: _SinkLane) -> None:
        while True:
            event = await lane.queue.get()
            try:
                await lane.sink.publish(event)
                record_sink_event(lane.sink.name, "delivered")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                record_sink_event(lane.sink.name, "failed")
                self._logger.error(
                    "sink_publish_failed",
                    sink=lane.sink.name,
                    version=event.version,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                lane.queue.task_done()

    async def flush(self) -> None:
        """Wait until every queued event has been handed to its sink."""
        lanes = list(self._lanes.values())
        if lanes:
            await asyncio.gather(*(lane.queue.join() for lane in lanes))

    async def close(self) -> None:
        """Drain pending events (bounded), stop workers and close sinks."""
        try:
            await asyncio.wait_for(self.flush(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            self._logger.warning("fanout_drain_timeout", timeout=self._drain_timeout)

        lanes = list(self._lanes.values())
        self._lanes.clear()
        for lane in lanes:
            await self._stop_worker(lane)
            try:
                await lane.sink.close()
            except Exception as e:
                self._logger.warning("sink_close_failed", sink=lane.sink.name, error=str(e))

        self._logger.info("fanout_closed", sinks=len(lanes))

    async def _stop_worker(self, lane: _SinkLane) -> None:
        if lane.task and not lane.task.done():
            lane.task.cancel()
            try:
                await lane.task
            except asyncio.CancelledError:
                pass
        lane.task = None


__all__ = ["FanOut", "DEFAULT_QUEUE_SIZE"]

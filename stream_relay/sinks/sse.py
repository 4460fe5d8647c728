"""
Server-Sent Events (SSE) sink and formatting helpers.

Each SSE client gets its own ServerPushSink. The fan-out pushes delivered
events into the sink's queue and the HTTP response generator drains it.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, AsyncIterator, Optional

from stream_relay.logging import get_component_logger
from stream_relay.protocols import LoggerProtocol
from stream_relay.stream.types import DeliveredEvent


def format_sse_event(
    data: Any,
    event: Optional[str] = None,
    id: Optional[str] = None,
) -> str:
    """
    Format data as an SSE event string.

    Args:
        data: Event data (will be JSON-encoded if not a string)
        event: Optional event type name
        id: Optional event ID for client reconnection

    Returns:
        Formatted SSE event string
    """
    lines = []

    if id is not None:
        lines.append(f"id: {id}")

    if event is not None:
        lines.append(f"event: {event}")

    if isinstance(data, str):
        data_str = data
    else:
        data_str = json.dumps(data, default=str)

    # SSE requires each line of data to be prefixed with "data: "
    for line in data_str.split("\n"):
        lines.append(f"data: {line}")

    return "\n".join(lines) + "\n\n"


def format_sse_comment(comment: str) -> str:
    """Format a comment (for keepalive)."""
    return f": {comment}\n\n"


class SSEStream:
    """Builds SSE frames with auto-incrementing event IDs."""

    def __init__(self) -> None:
        self._event_id = 0

    def event(
        self,
        data: Any,
        event: Optional[str] = None,
        include_id: bool = True,
    ) -> str:
        event_id = None
        if include_id:
            self._event_id += 1
            event_id = str(self._event_id)

        return format_sse_event(data, event=event, id=event_id)

    def connection_status(self, status: str = "connected") -> str:
        """Initial frame telling the client the push channel is open."""
        return self.event(
            {
                "type": "connection_status",
                "status": status,
                "timestamp": int(time.time() * 1000),
            },
            include_id=False,
        )


class ServerPushSink:
    """Delivery sink for one SSE connection.

    Usage:
        sink = ServerPushSink()
        fanout.add_sink(sink)
        return StreamingResponse(
            merge_sse_streams(sink.frames(), keepalive_interval=15.0),
            media_type="text/event-stream",
        )
    """

    name = "sse"

    def __init__(self, *, maxsize: int = 1000, logger: Optional[LoggerProtocol] = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._stream = SSEStream()
        self._closed = False
        self._logger = get_component_logger("ServerPushSink", logger)

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: DeliveredEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # Client is not reading; drop oldest
            self._queue.get_nowait()
            self._queue.put_nowait(event)
            self._logger.warning("sse_client_lagging", version=event.version)

    async def close(self) -> None:
        """End the push channel; the frame generator finishes after draining."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[str]:
        """Yield SSE frames: connection status first, then one per event."""
        yield self._stream.connection_status()
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield self._stream.event(event.envelope())


async def merge_sse_streams(
    data_stream: AsyncIterator[str],
    keepalive_interval: float = 15.0,
) -> AsyncIterator[str]:
    """
    Merge a data stream with keepalive pings.

    Keeps idle proxies from closing a push channel that has no events.

    Args:
        data_stream: Primary data stream
        keepalive_interval: Seconds between keepalives if no data

    Yields:
        SSE strings from data stream, with keepalives interspersed
    """
    data_queue: asyncio.Queue = asyncio.Queue()
    done = asyncio.Event()

    async def fill_queue():
        try:
            async for item in data_stream:
                await data_queue.put(item)
        finally:
            done.set()

    task = asyncio.create_task(fill_queue())

    try:
        while not done.is_set() or not data_queue.empty():
            try:
                item = await asyncio.wait_for(
                    data_queue.get(),
                    timeout=keepalive_interval
                )
                yield item
            except asyncio.TimeoutError:
                if not done.is_set():
                    yield format_sse_comment("keepalive")
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = [
    "format_sse_event",
    "format_sse_comment",
    "SSEStream",
    "ServerPushSink",
    "merge_sse_streams",
]

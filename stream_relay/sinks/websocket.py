"""WebSocket group sink.

Keeps the set of connected websocket subscribers and broadcasts every
delivered event to all of them.

Connections that fail a send, or that have been idle longer than the idle
timeout, are dropped from the group.
"""

from __future__ import annotations

import asyncio
import json
from time import monotonic
from typing import Any, Dict, Optional, Protocol, Set

from stream_relay.logging import get_component_logger
from stream_relay.protocols import LoggerProtocol
from stream_relay.stream.types import DeliveredEvent


class WebSocketProtocol(Protocol):
    """Protocol for websocket connections (duck typing).

    Matches FastAPI/Starlette ``WebSocket``.
    """
    async def send_text(self, data: str) -> None: ...
    async def close(self, code: int = 1000) -> None: ...


class WebSocketGroupSink:
    """Broadcasts delivered events to every registered websocket client."""

    name = "websocket"

    def __init__(
        self,
        *,
        event_name: str = "account-event",
        auth_token: Optional[str] = None,
        auth_required: bool = False,
        idle_timeout: float = 120.0,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        """Initialize the websocket group.

        Args:
            event_name: Event name carried in every message
            auth_token: Token required for registration when auth is on
            auth_required: Whether registration must present the token
            idle_timeout: Seconds without heartbeat before a client is dropped
            logger: Logger for DI (uses context logger if not provided)
        """
        self._connections: Set[WebSocketProtocol] = set()
        self._lock = asyncio.Lock()
        self._event_name = event_name
        self._auth_token = auth_token
        self._auth_required = auth_required
        self._idle_timeout = idle_timeout
        self._heartbeats: Dict[WebSocketProtocol, float] = {}
        self._logger = get_component_logger("WebSocketGroupSink", logger)

    async def register(self, websocket: WebSocketProtocol, *, token: Optional[str] = None) -> None:
        """Add a websocket connection to the group.

        Raises:
            PermissionError: If authentication fails
        """
        if self._auth_required and self._auth_token and token != self._auth_token:
            raise PermissionError("invalid websocket token")

        async with self._lock:
            self._connections.add(websocket)
            self._heartbeats[websocket] = monotonic()
        self._logger.info("websocket_registered", connections=len(self._connections))

    async def unregister(self, websocket: WebSocketProtocol) -> None:
        async with self._lock:
            self._connections.discard(websocket)
            self._heartbeats.pop(websocket, None)
        self._logger.debug("websocket_unregistered", connections=len(self._connections))

    async def heartbeat(self, websocket: WebSocketProtocol) -> None:
        """Record activity from a websocket client."""
        async with self._lock:
            if websocket in self._connections:
                self._heartbeats[websocket] = monotonic()

    async def publish(self, event: DeliveredEvent) -> None:
        await self.broadcast({"event": self._event_name, "payload": event.envelope()})

    async def broadcast(self, message: Dict[str, Any]) -> None:
        """Send ``message`` to every live websocket client."""
        serialized = json.dumps(message, default=str)

        async with self._lock:
            connections = list(self._connections)
            heartbeats = dict(self._heartbeats)

        send_tasks = []
        now = monotonic()
        for ws in connections:
            last_seen = heartbeats.get(ws)
            if last_seen is not None and now - last_seen > self._idle_timeout:
                self._logger.info("websocket_idle_timeout")
                await self.unregister(ws)
                continue
            send_tasks.append(asyncio.create_task(self._safe_send(ws, serialized)))

        if send_tasks:
            await asyncio.gather(*send_tasks, return_exceptions=True)

    async def _safe_send(self, websocket: WebSocketProtocol, data: str) -> None:
        try:
            await websocket.send_text(data)
        except Exception as e:
            self._logger.debug(
                "websocket_send_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.unregister(websocket)

    async def close(self) -> None:
        """Close every client connection and clear the group."""
        async with self._lock:
            connections = list(self._connections)
            self._connections.clear()
            self._heartbeats.clear()
        for ws in connections:
            try:
                await ws.close()
            except Exception as e:
                self._logger.debug("websocket_close_failed", error=str(e))

    @property
    def connection_count(self) -> int:
        return len(self._connections)


__all__ = ["WebSocketGroupSink", "WebSocketProtocol"]

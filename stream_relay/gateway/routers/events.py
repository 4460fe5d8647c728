"""
Account event trigger endpoints.

GET  /api/account-events          start the relay, return subscriber params
GET  /api/account-events/stream   start the relay, hold an SSE push channel
WS   /ws/account-events           start the relay, join the websocket group

Starting is idempotent. Any other method on the trigger paths is a 405.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from stream_relay.logging import get_current_logger
from stream_relay.relay import StreamRelay
from stream_relay.sinks.sse import ServerPushSink, merge_sse_streams
from stream_relay.stream.types import RelayState

router = APIRouter()

EVENTS_PATH = "/api/account-events"
STREAM_PATH = "/api/account-events/stream"
WEBSOCKET_PATH = "/ws/account-events"

_REJECTED_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


def _get_relay(request: Request) -> StreamRelay:
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(status_code=503, detail="Relay not configured")
    return relay


def _method_not_allowed() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"error": "Method not allowed"},
        headers={"Allow": "GET, OPTIONS"},
    )


def _relay_abandoned() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Relay abandoned, restart required"},
    )


# =============================================================================
# Trigger
# =============================================================================

@router.get(EVENTS_PATH)
async def start_account_events(request: Request) -> Dict[str, Any]:
    """Start the relay and return what a subscriber needs to connect."""
    _logger = get_current_logger()
    relay = _get_relay(request)

    started = relay.start()
    _logger.info("relay_trigger", started=started, state=relay.state.value)

    return {
        "started": started,
        "state": relay.state.value,
        "broadcast": relay.broadcast.connection_params() if relay.broadcast else None,
        "websocket": WEBSOCKET_PATH if relay.websocket_group else None,
        "sse": STREAM_PATH if relay.sse_enabled else None,
    }


@router.api_route(EVENTS_PATH, methods=_REJECTED_METHODS, include_in_schema=False)
async def reject_account_events() -> JSONResponse:
    return _method_not_allowed()


# =============================================================================
# Server-sent events
# =============================================================================

@router.get(STREAM_PATH)
async def stream_account_events(request: Request) -> Response:
    """Hold the connection open and push every delivered event."""
    _logger = get_current_logger()
    relay = _get_relay(request)
    if not relay.sse_enabled:
        raise HTTPException(status_code=404, detail="SSE delivery disabled")

    keepalive = getattr(request.app.state, "sse_keepalive_interval", 15.0)
    sink = ServerPushSink()
    if not await relay.add_subscriber(sink):
        return _relay_abandoned()
    relay.start()
    _logger.info("sse_client_connected", state=relay.state.value)

    async def event_generator():
        try:
            async for frame in merge_sse_streams(sink.frames(), keepalive_interval=keepalive):
                yield frame
        finally:
            await relay.remove_subscriber(sink)
            _logger.info("sse_client_disconnected")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.api_route(STREAM_PATH, methods=_REJECTED_METHODS, include_in_schema=False)
async def reject_stream_account_events() -> JSONResponse:
    return _method_not_allowed()


# =============================================================================
# WebSocket group
# =============================================================================

@router.websocket(WEBSOCKET_PATH)
async def websocket_account_events(websocket: WebSocket) -> None:
    _logger = get_current_logger()
    relay = getattr(websocket.app.state, "relay", None)
    group = relay.websocket_group if relay is not None else None
    if group is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if relay.state == RelayState.ABANDONED:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    try:
        await group.register(websocket, token=websocket.query_params.get("token"))
    except PermissionError:
        _logger.warning("websocket_auth_failed")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    relay.start()
    try:
        while True:
            # Any client message counts as a heartbeat
            await websocket.receive_text()
            await group.heartbeat(websocket)
    except WebSocketDisconnect:
        pass
    finally:
        await group.unregister(websocket)


__all__ = ["router", "EVENTS_PATH", "STREAM_PATH", "WEBSOCKET_PATH"]

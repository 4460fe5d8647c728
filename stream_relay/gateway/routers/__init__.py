"""Gateway routers."""

from stream_relay.gateway.routers.events import router as events_router

__all__ = ["events_router"]

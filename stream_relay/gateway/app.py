"""
Stream Relay Gateway - FastAPI application.

HTTP surface that triggers the relay and hosts its push transports.

Endpoints:
- REST: /api/account-events
- SSE: /api/account-events/stream
- WebSocket: /ws/account-events
- Health: /health
- Metrics: /metrics (Prometheus)

The relay is built once per process in the lifespan and kept on
``app.state.relay``; shutdown stops it and closes every sink.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

import stream_relay
from stream_relay.gateway.routers.events import router as events_router
from stream_relay.logging import configure_logging, get_current_logger
from stream_relay.relay import StreamRelay
from stream_relay.settings import RelaySettings, get_settings
from stream_relay.wiring import create_relay


def create_app(
    settings: Optional[RelaySettings] = None,
    relay: Optional[StreamRelay] = None,
) -> FastAPI:
    """Build the gateway application.

    Args:
        settings: Relay settings (defaults to environment settings)
        relay: Pre-built relay (tests); built from settings in the lifespan
            when omitted

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level, json_output=settings.log_json)
        _logger = get_current_logger()
        _logger.info(
            "gateway_startup_initiated",
            endpoint=settings.stream_endpoint,
            sinks=settings.enabled_sinks,
        )

        if getattr(app.state, "relay", None) is None:
            app.state.relay = create_relay(settings)
        app.state.sse_keepalive_interval = settings.sse_keepalive_interval

        _logger.info("gateway_startup_complete", status="READY")
        try:
            yield
        finally:
            _logger.info("gateway_shutdown_initiated")
            try:
                await app.state.relay.stop()
            except Exception as e:
                _logger.warning("relay_stop_error", error=str(e))
            _logger.info("gateway_shutdown_complete")

    app = FastAPI(
        title="Stream Relay Gateway",
        description="Relays Aptos account events to live subscribers",
        version=stream_relay.__version__,
        lifespan=lifespan,
    )
    if relay is not None:
        app.state.relay = relay

    origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Wildcard origins cannot be combined with credentials
        allow_credentials="*" not in origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(events_router)

    @app.get("/health")
    async def health() -> JSONResponse:
        current = getattr(app.state, "relay", None)
        if current is None:
            return JSONResponse(status_code=503, content={"status": "not_ready"})
        return JSONResponse({"status": "healthy", "relay": current.status()})

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    return app


__all__ = ["create_app"]

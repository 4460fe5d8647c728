"""Unit tests for the FastAPI gateway.

Tests the trigger endpoint, method rejection, health reporting, both push
transports and the metrics mount. The relay is injected with a scripted
or hanging upstream feed, so nothing touches the network. Push scenarios
end by abandonment, which closes every subscriber channel.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request
from starlette.websockets import WebSocketDisconnect

from stream_relay.gateway.app import create_app
from stream_relay.gateway.routers.events import stream_account_events
from stream_relay.settings import DEFAULT_MODULE_ADDRESS, RelaySettings
from stream_relay.stream.types import RelayState
from stream_relay.wiring import create_relay

from fixtures.stream import HangingSource, ScriptedSource, data, make_txn

MARKET_CREATED = f"{DEFAULT_MODULE_ADDRESS}::truthoracle::MarketCreated"


def _settings(**overrides):
    values = dict(delivery_sinks="websocket,sse", cors_origins="http://localhost:3000")
    values.update(overrides)
    return RelaySettings(_env_file=None, **values)


def _build(mock_logger, source=None, **overrides):
    settings = _settings(**overrides)
    source = source or HangingSource()
    relay = create_relay(settings, source=source, logger=mock_logger)
    return create_app(settings, relay=relay), relay, source


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _one_event_source():
    """Feed that delivers one matching event, then refuses to reconnect."""
    return ScriptedSource([[data(make_txn(42, (MARKET_CREATED, '{"market_id": "7"}')))]])


def _envelope():
    return {
        "type": "account_event",
        "data": {
            "version": 42,
            "event_type": MARKET_CREATED,
            "event_data": {"market_id": "7"},
            "timestamp": 1_700_000_042,
        },
    }


def _sse_payloads(body):
    payloads = []
    for frame in body.split("\n\n"):
        lines = [l[len("data: "):] for l in frame.splitlines() if l.startswith("data: ")]
        if lines:
            payloads.append(json.loads("\n".join(lines)))
    return payloads


async def _abandoned(relay, rounds=200):
    relay.start()
    for _ in range(rounds):
        if not relay.running:
            break
        await asyncio.sleep(0)
    assert relay.state == RelayState.ABANDONED


# =============================================================================
# Trigger endpoint
# =============================================================================

class TestTrigger:
    @pytest.mark.asyncio
    async def test_get_starts_relay_once(self, mock_logger):
        app, relay, source = _build(mock_logger)

        async with _client(app) as client:
            first = await client.get("/api/account-events")
            second = await client.get("/api/account-events")

        assert first.status_code == 200
        assert first.json()["started"] is True
        assert first.json()["websocket"] == "/ws/account-events"
        assert first.json()["sse"] == "/api/account-events/stream"
        assert first.json()["broadcast"] is None
        assert second.json()["started"] is False
        assert relay.running is True
        await relay.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    async def test_other_methods_rejected(self, mock_logger, method):
        app, relay, _ = _build(mock_logger)

        async with _client(app) as client:
            response = await client.request(method, "/api/account-events")
            stream_response = await client.request(method, "/api/account-events/stream")

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}
        assert stream_response.status_code == 405
        assert relay.running is False

    @pytest.mark.asyncio
    async def test_cors_preflight(self, mock_logger):
        app, _, _ = _build(mock_logger)

        async with _client(app) as client:
            response = await client.options(
                "/api/account-events",
                headers={
                    "Origin": "http://localhost:3000",
                    "Access-Control-Request-Method": "GET",
                },
            )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


# =============================================================================
# Health
# =============================================================================

class TestHealth:
    @pytest.mark.asyncio
    async def test_health_reports_relay_status(self, mock_logger):
        app, _, _ = _build(mock_logger, starting_version=77)

        async with _client(app) as client:
            response = await client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["relay"]["state"] == "idle"
        assert body["relay"]["cursor"] == 77

    @pytest.mark.asyncio
    async def test_health_without_relay(self):
        app = create_app(_settings())

        async with _client(app) as client:
            response = await client.get("/health")

        assert response.status_code == 503


# =============================================================================
# Push transports
# =============================================================================

class TestPushTransports:
    @pytest.mark.asyncio
    async def test_sse_disabled_returns_404(self, mock_logger):
        app, relay, _ = _build(mock_logger, delivery_sinks="websocket")

        async with _client(app) as client:
            response = await client.get("/api/account-events/stream")

        assert response.status_code == 404
        assert relay.running is False

    def test_websocket_disabled_is_refused(self, mock_logger):
        app, _, _ = _build(mock_logger, delivery_sinks="sse")
        client = TestClient(app)

        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/account-events"):
                pass

    def test_websocket_bad_token_is_closed(self, mock_logger):
        app, relay, source = _build(
            mock_logger, websocket_auth_required=True, websocket_auth_token="s3cret",
        )
        client = TestClient(app)

        with client.websocket_connect("/ws/account-events?token=wrong") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 1008
        assert source.starts == []

    @pytest.mark.asyncio
    async def test_sse_pushes_status_then_events(self, mock_logger):
        app, relay, source = _build(
            mock_logger, source=_one_event_source(), max_retries=0, retry_delay_ms=0,
            starting_version=42,
        )

        async with _client(app) as client:
            response = await client.get("/api/account-events/stream")

        payloads = _sse_payloads(response.text)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert payloads[0]["type"] == "connection_status"
        assert payloads[1:] == [_envelope()]
        assert source.starts == [42]
        assert relay.state == RelayState.ABANDONED

    @pytest.mark.asyncio
    async def test_sse_after_abandonment_returns_503(self, mock_logger):
        app, relay, _ = _build(
            mock_logger, source=ScriptedSource([]), max_retries=0, retry_delay_ms=0,
        )
        await _abandoned(relay)

        async with _client(app) as client:
            response = await client.get("/api/account-events/stream")

        assert response.status_code == 503
        assert response.json() == {"error": "Relay abandoned, restart required"}

    @pytest.mark.asyncio
    async def test_sse_disconnect_removes_subscriber(self, mock_logger):
        app, relay, _ = _build(mock_logger)
        request = Request({
            "type": "http",
            "method": "GET",
            "path": "/api/account-events/stream",
            "headers": [],
            "query_string": b"",
            "app": app,
        })

        response = await stream_account_events(request)
        body = response.body_iterator
        first = await body.__anext__()

        assert _sse_payloads(first)[0]["type"] == "connection_status"
        assert sorted(s.name for s in relay.fanout.sinks) == ["sse", "websocket"]

        await body.aclose()

        assert [s.name for s in relay.fanout.sinks] == ["websocket"]
        await relay.stop()

    def test_websocket_receives_events(self, mock_logger):
        app, relay, source = _build(
            mock_logger, source=_one_event_source(), max_retries=0, retry_delay_ms=0,
            starting_version=42,
        )
        client = TestClient(app)

        with client.websocket_connect("/ws/account-events") as ws:
            message = ws.receive_json()

        assert message == {"event": "account-event", "payload": _envelope()}
        assert source.starts[0] == 42

    @pytest.mark.asyncio
    async def test_websocket_after_abandonment_is_refused(self, mock_logger):
        app, relay, _ = _build(
            mock_logger, source=ScriptedSource([]), max_retries=0, retry_delay_ms=0,
        )
        await _abandoned(relay)
        client = TestClient(app)

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/account-events"):
                pass

        assert exc_info.value.code == 1013


# =============================================================================
# Metrics
# =============================================================================

class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_metrics_are_exposed(self, mock_logger):
        app, _, _ = _build(mock_logger)

        async with _client(app) as client:
            response = await client.get("/metrics/")

        assert response.status_code == 200
        assert "stream_relay_connection_attempts_total" in response.text
        assert "stream_relay_sink_events_total" in response.text

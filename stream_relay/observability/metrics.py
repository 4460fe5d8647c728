"""Prometheus metrics for the stream relay.

Exposed by the gateway at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge


# ============================================================
# Upstream Stream Metrics
# ============================================================

STREAM_CONNECTION_ATTEMPTS = Counter(
    "stream_relay_connection_attempts_total",
    "Connection attempts made against the upstream transaction stream.",
)

STREAM_RESUMES = Counter(
    "stream_relay_resumes_total",
    "Immediate reconnects after a recoverable protocol fault, by resume signal.",
    labelnames=("signal",),
)

STREAM_RETRIES = Counter(
    "stream_relay_retries_total",
    "Retry attempts after a failed session, by fault kind and outcome.",
    labelnames=("fault", "outcome"),  # outcome: scheduled, exhausted
)

RELAY_ABANDONMENTS = Counter(
    "stream_relay_abandonments_total",
    "Times the relay gave up on the upstream stream, by reason.",
    labelnames=("reason",),
)

CURSOR_POSITION = Gauge(
    "stream_relay_cursor_position",
    "Next transaction version the relay will request.",
)

EVENTS_MATCHED = Counter(
    "stream_relay_events_matched_total",
    "Events that matched the interest table, by event type.",
    labelnames=("event_type",),
)

# ============================================================
# Delivery Metrics
# ============================================================

SINK_EVENTS = Counter(
    "stream_relay_sink_events_total",
    "Delivered events handled by each sink, by outcome.",
    labelnames=("sink", "outcome"),  # outcome: delivered, failed, dropped
)


def record_connection_attempt() -> None:
    STREAM_CONNECTION_ATTEMPTS.inc()


def record_resume(signal: str) -> None:
    STREAM_RESUMES.labels(signal=signal).inc()


def record_retry(fault: str, outcome: str) -> None:
    """Record a retry decision.

    Args:
        fault: Fault kind (connection, integrity)
        outcome: scheduled when a reconnect follows, exhausted when the
            retry budget is spent
    """
    STREAM_RETRIES.labels(fault=fault, outcome=outcome).inc()


def record_abandonment(reason: str) -> None:
    RELAY_ABANDONMENTS.labels(reason=reason).inc()


def set_cursor_position(position: int) -> None:
    CURSOR_POSITION.set(position)


def record_event_matched(event_type: str) -> None:
    EVENTS_MATCHED.labels(event_type=event_type).inc()


def record_sink_event(sink: str, outcome: str) -> None:
    """Record what happened to one event on one sink lane.

    Args:
        sink: Sink name (broadcast, websocket, sse)
        outcome: delivered, failed or dropped
    """
    SINK_EVENTS.labels(sink=sink, outcome=outcome).inc()

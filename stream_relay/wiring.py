"""
Relay wiring - builds a StreamRelay from settings.

This is the composition root for the relay: it picks the upstream source,
builds the interest table, and instantiates the delivery sinks enabled by
``DELIVERY_SINKS``. Nothing here is a module-level singleton; the gateway
calls ``create_relay`` once in its lifespan.

**Usage:**
    ```python
    from stream_relay.settings import get_settings
    from stream_relay.wiring import create_relay

    relay = create_relay(get_settings())
    relay.start()
    ```
"""

from typing import List, Optional

from stream_relay.logging import create_logger
from stream_relay.protocols import DeliverySinkProtocol, LoggerProtocol, TransactionSourceProtocol
from stream_relay.relay import StreamRelay
from stream_relay.settings import RelaySettings
from stream_relay.sinks.broadcast import BroadcastSink
from stream_relay.sinks.fanout import FanOut
from stream_relay.sinks.websocket import WebSocketGroupSink
from stream_relay.stream.classifier import EventClassifier, InterestTable
from stream_relay.stream.cursor import CursorState
from stream_relay.stream.grpc_source import GrpcTransactionSource
from stream_relay.stream.session import StreamSession
from stream_relay.stream.supervisor import ReconnectSupervisor


def build_interest_table(settings: RelaySettings) -> InterestTable:
    return InterestTable.for_module(
        settings.module_address,
        settings.module_name,
        settings.interest_event_names,
    )


def create_relay(
    settings: RelaySettings,
    *,
    source: Optional[TransactionSourceProtocol] = None,
    logger: Optional[LoggerProtocol] = None,
) -> StreamRelay:
    """Create a fully wired relay.

    Args:
        settings: Relay settings
        source: Upstream feed override (defaults to the gRPC stream)
        logger: Base logger (defaults to a "relay" component logger)

    Returns:
        StreamRelay, not yet started
    """
    logger = logger or create_logger("relay", module=settings.module_name)

    if source is None:
        source = GrpcTransactionSource(
            settings.stream_endpoint,
            settings.aptos_api_key,
            connect_timeout=settings.stream_connect_timeout,
            logger=logger,
        )
        if not settings.aptos_api_key:
            logger.warning("aptos_api_key_missing", endpoint=settings.stream_endpoint)

    enabled = settings.enabled_sinks
    sinks: List[DeliverySinkProtocol] = []

    broadcast = None
    if "broadcast" in enabled:
        broadcast = BroadcastSink(
            settings.redis_url,
            channel=settings.broadcast_channel,
            event_name=settings.broadcast_event,
            logger=logger,
        )
        sinks.append(broadcast)

    websocket_group = None
    if "websocket" in enabled:
        websocket_group = WebSocketGroupSink(
            event_name=settings.broadcast_event,
            auth_token=settings.websocket_auth_token,
            auth_required=settings.websocket_auth_required,
            idle_timeout=settings.websocket_idle_timeout,
            logger=logger,
        )
        sinks.append(websocket_group)

    fanout = FanOut(sinks, queue_size=settings.sink_queue_size, logger=logger)

    table = build_interest_table(settings)
    classifier = EventClassifier(table, logger=logger)
    cursor = CursorState(settings.starting_version)

    session = StreamSession(
        source,
        classifier,
        fanout,
        expected_chain_id=settings.expected_chain_id,
        on_progress=cursor.advance_past,
        logger=logger,
    )
    supervisor = ReconnectSupervisor(
        session,
        cursor,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay_seconds,
        abandon_on_integrity_fault=settings.abandon_on_integrity_fault,
        logger=logger,
    )

    logger.info(
        "relay_wired",
        sinks=enabled,
        interest_events=sorted(table.entries),
        starting_version=settings.starting_version,
        expected_chain_id=settings.expected_chain_id,
    )

    return StreamRelay(
        supervisor,
        fanout,
        broadcast=broadcast,
        websocket_group=websocket_group,
        sse_enabled="sse" in enabled,
        logger=logger,
    )


__all__ = ["create_relay", "build_interest_table"]

"""Delivery sinks and the fan-out that drives them."""

from stream_relay.sinks.broadcast import BroadcastSink
from stream_relay.sinks.fanout import FanOut
from stream_relay.sinks.sse import ServerPushSink
from stream_relay.sinks.websocket import WebSocketGroupSink

__all__ = ["BroadcastSink", "FanOut", "ServerPushSink", "WebSocketGroupSink"]

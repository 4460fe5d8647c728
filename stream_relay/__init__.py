"""Resilient relay from the Aptos transaction stream to live subscribers.

The relay consumes a versioned transaction feed, keeps a resume cursor,
classifies embedded events against a fixed interest table and fans the
matches out to delivery sinks (Redis broadcast, websocket group, SSE).
"""

__version__ = "1.0.0"

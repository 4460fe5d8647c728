"""Tests for FanOut delivery lanes."""

import asyncio

import pytest
import structlog

from stream_relay.logging import relay_scope
from stream_relay.sinks.fanout import FanOut
from stream_relay.stream.types import DeliveredEvent

from fixtures.metrics import metric_value
from fixtures.stream import BlockingSink, RecordingSink

SINK_EVENTS = "stream_relay_sink_events_total"


def _event(version):
    return DeliveredEvent(
        version=version,
        event_type="0x1::m::Created",
        event_data={"v": version},
        timestamp=1_700_000_000,
    )


class TestFanOut:
    @pytest.mark.asyncio
    async def test_every_sink_receives_events_in_order(self, mock_logger):
        first, second = RecordingSink("a"), RecordingSink("b")
        fanout = FanOut([first, second], logger=mock_logger)

        for version in (1, 2, 3):
            fanout.publish(_event(version))
        await fanout.flush()

        assert [e.version for e in first.events] == [1, 2, 3]
        assert [e.version for e in second.events] == [1, 2, 3]
        await fanout.close()

    @pytest.mark.asyncio
    async def test_failing_sink_is_isolated(self, mock_logger, failing_sink):
        healthy = RecordingSink()
        failed_before = metric_value(SINK_EVENTS, sink="failing", outcome="failed")
        delivered_before = metric_value(SINK_EVENTS, sink="recording", outcome="delivered")
        fanout = FanOut([failing_sink, healthy], logger=mock_logger)

        fanout.publish(_event(1))
        fanout.publish(_event(2))
        await fanout.flush()

        assert [e.version for e in healthy.events] == [1, 2]
        assert metric_value(SINK_EVENTS, sink="failing", outcome="failed") - failed_before == 2
        assert metric_value(SINK_EVENTS, sink="recording", outcome="delivered") - delivered_before == 2
        error_events = [c[0][0] for c in mock_logger.error.call_args_list]
        assert error_events == ["sink_publish_failed", "sink_publish_failed"]
        await fanout.close()

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_slow_sink(self, mock_logger):
        slow = BlockingSink()
        fast = RecordingSink()
        fanout = FanOut([slow, fast], logger=mock_logger)

        fanout.publish(_event(1))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert [e.version for e in fast.events] == [1]
        assert slow.events == []

        slow.release.set()
        await fanout.flush()
        assert [e.version for e in slow.events] == [1]
        await fanout.close()

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self, mock_logger):
        slow = BlockingSink()
        fanout = FanOut([slow], queue_size=1, logger=mock_logger)
        dropped_before = metric_value(SINK_EVENTS, sink="blocking", outcome="dropped")

        fanout.publish(_event(1))
        fanout.publish(_event(2))  # evicts 1 before the worker runs
        await asyncio.sleep(0)     # worker takes 2 and blocks
        fanout.publish(_event(3))
        fanout.publish(_event(4))  # evicts 3

        slow.release.set()
        await fanout.flush()

        assert [e.version for e in slow.events] == [2, 4]
        assert metric_value(SINK_EVENTS, sink="blocking", outcome="dropped") - dropped_before == 2
        mock_logger.warning.assert_any_call("sink_queue_full", sink="blocking", version=2)
        await fanout.close()

    @pytest.mark.asyncio
    async def test_close_closes_sinks_and_clears_lanes(self, mock_logger, recording_sink):
        fanout = FanOut([recording_sink], logger=mock_logger)
        fanout.publish(_event(1))

        await fanout.close()

        assert recording_sink.closed is True
        assert [e.version for e in recording_sink.events] == [1]
        assert fanout.sinks == []

    @pytest.mark.asyncio
    async def test_close_with_stuck_sink_times_out(self, mock_logger):
        stuck = BlockingSink()
        fanout = FanOut([stuck], drain_timeout=0.01, logger=mock_logger)
        fanout.publish(_event(1))

        await fanout.close()

        assert stuck.closed is True
        mock_logger.warning.assert_any_call("fanout_drain_timeout", timeout=0.01)

    @pytest.mark.asyncio
    async def test_remove_sink_keeps_it_open(self, mock_logger, recording_sink):
        other = RecordingSink("other")
        fanout = FanOut([recording_sink, other], logger=mock_logger)

        await fanout.remove_sink(recording_sink)
        fanout.publish(_event(1))
        await fanout.flush()

        assert recording_sink.events == []
        assert recording_sink.closed is False
        assert [e.version for e in other.events] == [1]
        await fanout.close()

    def test_add_sink_is_idempotent(self, mock_logger, recording_sink):
        fanout = FanOut(logger=mock_logger)
        fanout.add_sink(recording_sink)
        fanout.add_sink(recording_sink)

        assert fanout.sinks == [recording_sink]

    def test_stats_group_lanes_sharing_a_name(self, mock_logger):
        fanout = FanOut(
            [RecordingSink("sse"), RecordingSink("sse"), RecordingSink("websocket")],
            logger=mock_logger,
        )

        assert fanout.stats() == {
            "sse": {"lanes": 2, "pending": 0},
            "websocket": {"lanes": 1, "pending": 0},
        }

    @pytest.mark.asyncio
    async def test_workers_do_not_inherit_session_log_context(self, mock_logger):
        seen = []

        class ContextSink(RecordingSink):
            async def publish(self, event):
                seen.append(structlog.contextvars.get_contextvars())
                await super().publish(event)

        fanout = FanOut([ContextSink()], logger=mock_logger)
        with relay_scope(cursor=10, attempt=1):
            fanout.publish(_event(10))
        with relay_scope(cursor=11, attempt=2):
            fanout.publish(_event(11))
        await fanout.flush()

        assert seen == [{}, {}]
        await fanout.close()

"""
Unit tests for usage recording.
"""

import pytest

from conftest import RecordingSink

from ai_tier_router.core.tiers import RequestKind, Tier
from ai_tier_router.core.usage import UsageRecorder
from ai_tier_router.storage.models import UsageRecord


class TestUsageRecorder:
    """Test fire-and-forget writes."""

    @pytest.mark.asyncio
    async def test_record_writes_after_drain(self):
        sink = RecordingSink()
        recorder = UsageRecorder(sink)

        recorder.record("alice", Tier.THINKER, 5, RequestKind.FORECAST, True, {"model": "gpt-4o", "escalated": True})
        await recorder.drain()

        assert len(sink.records) == 1
        record = sink.records[0]
        assert record.caller_id == "alice"
        assert record.tier == "thinker"
        assert record.credits_charged == 5
        assert record.request_kind == "forecast"
        assert record.success is True
        assert record.model == "gpt-4o"
        assert record.escalated is True
        assert recorder.pending == 0

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_propagate_to_caller(self):
        sink = RecordingSink(fail=True)
        recorder = UsageRecorder(sink)

        task = recorder.record("alice", Tier.WORKER, 0, RequestKind.GENERAL, False)
        await recorder.drain()

        assert task.exception() is None
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_failed_write_task_can_be_awaited_without_drain(self):
        recorder = UsageRecorder(RecordingSink(fail=True))

        task = recorder.record("alice", Tier.THINKER, 5, RequestKind.FORECAST, True)

        assert await task is None

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await UsageRecorder(RecordingSink()).drain()


def test_usage_record_rejects_negative_credits():
    from datetime import datetime

    with pytest.raises(ValueError, match="negative"):
        UsageRecord(
            timestamp=datetime.now(),
            caller_id="alice",
            tier="worker",
            credits_charged=-1,
            request_kind="general",
            success=True,
        )

"""
Usage recording.

Writes one record per terminal outcome to the usage sink. Writes are
scheduled as background tasks so the router never waits on the sink;
drain() awaits everything still in flight.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional, Set

from ai_tier_router.storage.models import UsageRecord

from .interfaces import UsageSink
from .logging import get_logger
from .tiers import RequestKind, Tier

logger = get_logger(__name__)


class UsageRecorder:
    """Fire-and-forget writer of usage records."""

    def __init__(self, sink: UsageSink):
        self.sink = sink
        self._pending: Set[asyncio.Task] = set()

    def record(
        self,
        caller_id: str,
        tier: Tier,
        credits_charged: int,
        request_kind: RequestKind,
        success: bool,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task:
        """Schedule a usage record write.

        Args:
            caller_id: Caller the request belonged to
            tier: Tier that served (or would have served) the request
            credits_charged: Credits debited, zero for declines and failures
            request_kind: Kind of request
            success: Whether content was returned
            metadata: Optional model, elapsed_ms, escalated, prompt_length,
                response_length and error_kind

        Returns:
            The scheduled write task
        """
        metadata = metadata or {}
        record = UsageRecord(
            timestamp=datetime.now(),
            caller_id=caller_id,
            tier=tier.value,
            credits_charged=credits_charged,
            request_kind=request_kind.value,
            success=success,
            model=metadata.get("model"),
            elapsed_ms=int(metadata.get("elapsed_ms", 0)),
            escalated=bool(metadata.get("escalated", False)),
            prompt_length=int(metadata.get("prompt_length", 0)),
            response_length=int(metadata.get("response_length", 0)),
            error_kind=metadata.get("error_kind"),
        )
        task = asyncio.create_task(self._write(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, record: UsageRecord) -> None:
        try:
            await self.sink.write(record)
        except Exception:
            logger.error(
                "usage_record_failed",
                caller_id=record.caller_id,
                tier=record.tier,
                success=record.success,
                exc_info=True,
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

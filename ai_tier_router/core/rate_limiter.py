"""
Per-caller fixed-window rate limiting.

Admission runs before any tier or credit logic so abusive callers are
rejected cheaply. The entry map is shared by every concurrent request and
is only touched while holding the limiter's lock.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .logging import get_logger

logger = get_logger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class RateLimitEntry:
    """Admission count for one caller within the current window."""
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of an admission check."""
    allowed: bool
    remaining: int
    reset_in_ms: int


class RateLimiter:
    """Fixed-window admission gate keyed by caller ID."""

    def __init__(
        self,
        window_ms: int = 60_000,
        max_requests: int = 10,
        sweep_interval_ms: int = 300_000,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.sweep_interval_ms = sweep_interval_ms
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    async def admit(self, caller_id: str) -> AdmissionDecision:
        """Admit or reject one request from a caller.

        The first touch for a caller, or any touch once its window has
        expired, starts a fresh window with a count of one.

        Args:
            caller_id: Caller making the request

        Returns:
            AdmissionDecision with remaining admissions and time to reset
        """
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(caller_id)

            if entry is None or now >= entry.window_reset_at:
                self._entries[caller_id] = RateLimitEntry(count=1, window_reset_at=now + self.window_ms)
                return AdmissionDecision(True, self.max_requests - 1, self.window_ms)

            reset_in_ms = max(0, int(entry.window_reset_at - now))
            if entry.count >= self.max_requests:
                logger.warning(
                    "rate_limit_exceeded",
                    caller_id=caller_id,
                    count=entry.count,
                    max_requests=self.max_requests,
                    reset_in_ms=reset_in_ms,
                )
                return AdmissionDecision(False, 0, reset_in_ms)

            entry.count += 1
            return AdmissionDecision(True, self.max_requests - entry.count, reset_in_ms)

    async def sweep(self) -> int:
        """Remove entries whose window has expired.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now >= entry.window_reset_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("rate_limit_swept", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_forever())

    async def stop(self) -> None:
        """Cancel the periodic sweep if it is running."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweep_task
        self._sweep_task = None

    async def reset(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_ms / 1000)
            await self.sweep()

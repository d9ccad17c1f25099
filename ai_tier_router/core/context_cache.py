"""
Short-lived cache of prepared prompt scaffolding.

Keyed by (caller, request kind, department). Entries expire lazily on
lookup and are replaced, never updated in place. Losing the cache only
costs latency.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .tiers import RequestKind, Tier

CacheKey = Tuple[str, str, str]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def cache_key(caller_id: str, request_kind: RequestKind, department: Optional[str] = None) -> CacheKey:
    """Build the cache key for a caller, kind and department."""
    return (caller_id, request_kind.value, department or "general")


@dataclass(frozen=True)
class CacheEntry:
    """Cached prompt scaffolding and the tier it was built for."""
    content: str
    created_at: float
    tier: Tier


class ContextCache:
    """TTL cache with lazy expiry, safe for concurrent use."""

    def __init__(self, ttl_ms: int = 15 * 60 * 1000, clock: Callable[[], float] = _monotonic_ms):
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the live entry for a key, evicting it if it has expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.ttl_ms:
                del self._entries[key]
                return None
            return entry

    async def put(self, key: CacheKey, content: str, tier: Tier) -> CacheEntry:
        """Store content for a key, replacing any existing entry."""
        entry = CacheEntry(content=content, created_at=self._clock(), tier=tier)
        async with self._lock:
            self._entries[key] = entry
        return entry

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

"""
Unit tests for the context cache.
"""

import pytest

from conftest import FakeClock

from ai_tier_router.core.context_cache import ContextCache, cache_key
from ai_tier_router.core.tiers import RequestKind, Tier


class TestContextCache:
    """Test TTL expiry and replacement."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ContextCache(ttl_ms=1_000, clock=self.clock)
        self.key = cache_key("alice", RequestKind.CHART, "sales")

    @pytest.mark.asyncio
    async def test_miss_on_empty_cache(self):
        assert await self.cache.get(self.key) is None

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self):
        await self.cache.put(self.key, "scaffold", Tier.WORKER)
        self.clock.advance(1_000)

        entry = await self.cache.get(self.key)

        assert entry.content == "scaffold"
        assert entry.tier == Tier.WORKER

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted(self):
        await self.cache.put(self.key, "scaffold", Tier.WORKER)
        self.clock.advance(1_001)

        assert await self.cache.get(self.key) is None
        assert len(self.cache) == 0

    @pytest.mark.asyncio
    async def test_put_replaces_entry(self):
        await self.cache.put(self.key, "old", Tier.WORKER)
        self.clock.advance(900)
        await self.cache.put(self.key, "new", Tier.THINKER)
        self.clock.advance(900)

        entry = await self.cache.get(self.key)

        assert entry.content == "new"
        assert entry.tier == Tier.THINKER

    @pytest.mark.asyncio
    async def test_clear(self):
        await self.cache.put(self.key, "scaffold", Tier.WORKER)

        await self.cache.clear()

        assert len(self.cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            ContextCache(ttl_ms=0)


class TestCacheKey:
    """Test cache key construction."""

    def test_missing_department_defaults_to_general(self):
        assert cache_key("alice", RequestKind.TABLE) == ("alice", "table", "general")

    def test_keys_differ_by_kind_and_department(self):
        keys = {
            cache_key("alice", RequestKind.CHART, "sales"),
            cache_key("alice", RequestKind.TABLE, "sales"),
            cache_key("alice", RequestKind.CHART, "finance"),
            cache_key("bob", RequestKind.CHART, "sales"),
        }

        assert len(keys) == 4

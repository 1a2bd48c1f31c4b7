"""Tests for the resolution cache."""

import asyncio
from datetime import datetime, timezone

import pytest

from neo_access.core.exceptions import CacheError
from neo_access.features.cache.resolution_cache import ResolutionCache
from neo_access.features.permissions.entities.effective import EffectivePermissionSet


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def permission_set(tenant_id="t1", user_id="u1"):
    return EffectivePermissionSet.empty(tenant_id, user_id, NOW)


class FakeClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def small_cache(fake_clock):
    return ResolutionCache(ttl_seconds=10, max_entries=3, clock=fake_clock)


class TestConfiguration:
    """Test constructor validation."""

    def test_rejects_non_positive_bounds(self):
        with pytest.raises(CacheError):
            ResolutionCache(ttl_seconds=0)
        with pytest.raises(CacheError):
            ResolutionCache(max_entries=0)


class TestGetPut:
    """Test basic reads and writes."""

    @pytest.mark.asyncio
    async def test_put_then_get(self, small_cache):
        value = permission_set()
        assert await small_cache.put("t1", "u1", value)
        assert await small_cache.get("t1", "u1") is value
        assert await small_cache.get("t2", "u1") is None

        stats = small_cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    @pytest.mark.asyncio
    async def test_put_rejects_mismatched_key(self, small_cache):
        with pytest.raises(CacheError):
            await small_cache.put("t2", "u1", permission_set("t1", "u1"))

    @pytest.mark.asyncio
    async def test_ttl_expiry_is_lazy(self, small_cache, fake_clock):
        await small_cache.put("t1", "u1", permission_set())
        fake_clock.value = 10
        assert await small_cache.get("t1", "u1") is None
        assert small_cache.stats().expirations == 1
        assert len(small_cache) == 0

    @pytest.mark.asyncio
    async def test_ttl_is_capped_at_default(self, small_cache, fake_clock):
        await small_cache.put("t1", "u1", permission_set(), ttl=1000)
        fake_clock.value = 10
        assert not await small_cache.contains("t1", "u1")

    @pytest.mark.asyncio
    async def test_shorter_ttl_honoured(self, small_cache, fake_clock):
        await small_cache.put("t1", "u1", permission_set(), ttl=2)
        fake_clock.value = 2
        assert await small_cache.get("t1", "u1") is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_not_stored(self, small_cache):
        assert not await small_cache.put("t1", "u1", permission_set(), ttl=0)
        assert len(small_cache) == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self, small_cache):
        for user_id in ("u1", "u2", "u3"):
            await small_cache.put("t1", user_id, permission_set(user_id=user_id))
        await small_cache.get("t1", "u1")
        await small_cache.put("t1", "u4", permission_set(user_id="u4"))

        assert await small_cache.contains("t1", "u1")
        assert not await small_cache.contains("t1", "u2")
        assert small_cache.stats().capacity_evictions == 1


class TestEviction:
    """Test targeted and tenant-wide eviction."""

    @pytest.mark.asyncio
    async def test_evict_is_idempotent(self, small_cache):
        await small_cache.put("t1", "u1", permission_set())
        assert await small_cache.evict("t1", "u1")
        assert not await small_cache.evict("t1", "u1")

    @pytest.mark.asyncio
    async def test_evict_many_counts_removed(self, small_cache):
        await small_cache.put("t1", "u1", permission_set())
        await small_cache.put("t1", "u2", permission_set(user_id="u2"))
        assert await small_cache.evict_many("t1", ["u1", "u2", "u9"]) == 2

    @pytest.mark.asyncio
    async def test_evict_tenant_leaves_other_tenants(self, small_cache):
        await small_cache.put("t1", "u1", permission_set())
        await small_cache.put("t1", "u2", permission_set(user_id="u2"))
        await small_cache.put("t2", "u1", permission_set(tenant_id="t2"))

        assert await small_cache.evict_tenant("t1") == 2
        assert await small_cache.contains("t2", "u1")
        assert len(small_cache) == 1


class TestStalePuts:
    """Test version-token protection against stale writes."""

    @pytest.mark.asyncio
    async def test_put_after_key_eviction_dropped(self, small_cache):
        token = small_cache.version("t1", "u1")
        await small_cache.evict("t1", "u1")
        assert not await small_cache.put("t1", "u1", permission_set(), version=token)
        assert small_cache.stats().stale_puts_rejected == 1

    @pytest.mark.asyncio
    async def test_put_after_tenant_eviction_dropped(self, small_cache):
        token = small_cache.version("t1", "u1")
        await small_cache.evict_tenant("t1")
        assert not await small_cache.put("t1", "u1", permission_set(), version=token)

    @pytest.mark.asyncio
    async def test_other_keys_unaffected(self, small_cache):
        token = small_cache.version("t1", "u1")
        await small_cache.evict("t1", "u2")
        await small_cache.evict_tenant("t2")
        assert await small_cache.put("t1", "u1", permission_set(), version=token)

    @pytest.mark.asyncio
    async def test_fresh_token_accepted(self, small_cache):
        await small_cache.evict("t1", "u1")
        token = small_cache.version("t1", "u1")
        assert await small_cache.put("t1", "u1", permission_set(), version=token)

    @pytest.mark.asyncio
    async def test_clear_drops_in_flight_puts(self, small_cache):
        token = small_cache.version("t1", "u1")
        await small_cache.clear()
        assert not await small_cache.put("t1", "u1", permission_set(), version=token)
        assert await small_cache.put("t1", "u1", permission_set(), version=small_cache.version("t1", "u1"))

    @pytest.mark.asyncio
    async def test_sweep_folds_old_stamps(self, small_cache, fake_clock):
        token = small_cache.version("t1", "u1")
        await small_cache.evict("t1", "u1")
        fake_clock.value = 11
        await small_cache.sweep()
        assert not await small_cache.put("t1", "u1", permission_set(), version=token)

    @pytest.mark.asyncio
    async def test_eviction_records_bounded_without_sweeper(self, small_cache):
        token = small_cache.version("t1", "u0")
        for i in range(1000):
            await small_cache.evict("t1", f"ghost-{i}")
            await small_cache.evict_tenant(f"t-{i}")

        assert len(small_cache._key_evictions) <= small_cache.max_entries
        assert len(small_cache._tenant_evictions) <= small_cache.max_entries
        assert not await small_cache.put("t1", "u0", permission_set(user_id="u0"), version=token)
        assert await small_cache.put("t1", "u0", permission_set(user_id="u0"), version=small_cache.version("t1", "u0"))

    @pytest.mark.asyncio
    async def test_old_stamps_folded_on_next_eviction(self, small_cache, fake_clock):
        token = small_cache.version("t1", "u1")
        await small_cache.evict("t1", "u1")
        fake_clock.value = 11
        await small_cache.evict("t1", "u2")

        assert list(small_cache._key_evictions) == [("t1", "u2")]
        assert not await small_cache.put("t1", "u1", permission_set(), version=token)


class TestSweep:
    """Test the periodic sweep."""

    @pytest.mark.asyncio
    async def test_sweep_removes_expired(self, small_cache, fake_clock):
        await small_cache.put("t1", "u1", permission_set(), ttl=1)
        await small_cache.put("t1", "u2", permission_set(user_id="u2"))
        fake_clock.value = 5
        assert await small_cache.sweep() == 1
        assert len(small_cache) == 1

    @pytest.mark.asyncio
    async def test_background_sweeper(self, fake_clock):
        cache = ResolutionCache(ttl_seconds=1, max_entries=10, sweep_interval_seconds=0.01, clock=fake_clock)
        await cache.put("t1", "u1", permission_set())
        fake_clock.value = 2
        await cache.start()
        try:
            for _ in range(100):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await cache.stop()
        assert len(cache) == 0

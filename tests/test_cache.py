"""
tests/test_cache.py — TTLCache & CacheSweeper Unit Tests
=========================================================

Time is driven by a fake clock so expiry is exact and deterministic.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from conftest import run_async

from kehila.constants import CacheTTL, leaderboard_cache_key
from kehila.engine.cache import CacheSweeper, TTLCache


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------
class TestExpiry:
    @pytest.mark.parametrize("ttl", [1, CacheTTL.SHORT, CacheTTL.EXTRA_LONG])
    def test_fresh_then_stale(self, cache, clock, ttl):
        cache.set("k", "v", ttl)
        assert cache.get("k") == "v"

        clock.advance(ttl + 0.001)
        assert cache.get("k") is None
        assert "k" not in cache
        assert cache.stats().size == 0

    def test_exactly_at_ttl_is_still_fresh(self, cache, clock):
        cache.set("k", 1, 10)
        clock.advance(10)
        assert cache.get("k") == 1

    def test_default_ttl_is_medium(self, cache, clock):
        cache.set("k", "v")
        clock.advance(CacheTTL.MEDIUM - 1)
        assert cache.get("k") == "v"
        clock.advance(2)
        assert cache.get("k") is None

    def test_custom_ttl_overrides_for_one_read(self, cache, clock):
        cache.set("k", "v", CacheTTL.LONG)
        clock.advance(30)
        assert cache.get("k", custom_ttl=10) is None
        # The stale read removed the entry.
        assert cache.get("k") is None

    def test_custom_ttl_can_extend(self, cache, clock):
        cache.set("k", "v", 5)
        clock.advance(20)
        assert cache.get("k", custom_ttl=60) == "v"

    def test_stored_none_is_indistinguishable_from_miss(self, cache):
        cache.set("k", None)
        assert cache.get("k") is None


# ---------------------------------------------------------------------------
# Writes & invalidation
# ---------------------------------------------------------------------------
class TestWrites:
    def test_set_overwrites_and_resets_access(self, cache, clock):
        cache.set("k", 1)
        cache.get("k")
        cache.get("k")
        clock.advance(5)
        cache.set("k", 2)

        entry = cache.stats().entries[0]
        assert entry.access_count == 0
        assert entry.age == 0
        assert cache.get("k") == 2

    def test_invalidate_present_key(self, cache):
        cache.set("a", 1)
        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.stats().deletes == 1

    def test_invalidate_absent_key_is_noop(self, cache):
        cache.invalidate("nope")
        assert cache.stats().deletes == 0

    def test_pattern_clear_is_substring(self, cache):
        cache.set("profiles:leaderboard:10", 1)
        cache.set("user:profiles:42", 2)
        cache.set("gamification_rules:active", 3)

        removed = cache.clear("profiles")

        assert removed == 2
        assert cache.get("gamification_rules:active") == 3
        assert cache.get("profiles:leaderboard:10") is None
        assert cache.get("user:profiles:42") is None
        stats = cache.stats()
        assert stats.deletes == 2
        assert stats.clears == 0

    def test_pattern_is_not_a_glob(self, cache):
        cache.set("profiles:1", 1)
        assert cache.clear("profiles:*") == 0
        assert cache.get("profiles:1") == 1

    def test_full_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert len(cache) == 0
        assert cache.stats().clears == 1


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------
class TestStats:
    def test_counters_match_operations(self, cache):
        for i in range(3):
            cache.set(f"k{i}", i)
        for _ in range(4):
            cache.get("k0")
        for _ in range(2):
            cache.get("missing")

        stats = cache.stats()
        assert stats.hits == 4
        assert stats.misses == 2
        assert stats.sets == 3

    def test_entry_diagnostics(self, cache, clock):
        cache.set(leaderboard_cache_key(10), ["x"])
        clock.advance(7)
        cache.get(leaderboard_cache_key(10))

        entry = cache.stats().entries[0]
        assert entry.key == "profiles:leaderboard:10"
        assert entry.age == 7
        assert entry.access_count == 1
        assert entry.last_accessed == clock.now

    def test_to_dict_shape(self, cache):
        cache.set("k", 1)
        d = cache.stats().to_dict()
        assert set(d) == {"hits", "misses", "sets", "deletes", "clears", "size", "entries"}
        assert d["entries"][0]["key"] == "k"

    def test_contains_does_not_count(self, cache):
        cache.set("k", 1)
        assert "k" in cache
        assert cache.stats().hits == 0


# ---------------------------------------------------------------------------
# Sweeping
# ---------------------------------------------------------------------------
class TestSweep:
    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("short", 1, 10)
        cache.set("long", 2, 100)
        clock.advance(50)

        assert cache.sweep_expired() == 1
        assert "short" not in cache
        assert "long" in cache
        assert cache.stats().deletes == 1

    def test_sweeper_once_swallows_errors(self):
        broken = MagicMock(spec=TTLCache)
        broken.sweep_expired.side_effect = RuntimeError("boom")
        assert CacheSweeper(broken).sweep_once() == 0

    def test_sweeper_runs_on_interval(self, cache, clock):
        cache.set("k", 1, 1)
        clock.advance(5)
        sweeper = CacheSweeper(cache, interval=0.01)

        async def scenario():
            sweeper.start(asyncio.get_running_loop())
            assert sweeper.running
            await asyncio.sleep(0.05)
            sweeper.stop()
            await asyncio.sleep(0)

        run_async(scenario())
        assert not sweeper.running
        assert len(cache) == 0

    def test_start_twice_is_noop(self, cache):
        sweeper = CacheSweeper(cache, interval=60)

        async def scenario():
            loop = asyncio.get_running_loop()
            sweeper.start(loop)
            first = sweeper._task
            sweeper.start(loop)
            assert sweeper._task is first
            sweeper.stop()
            await asyncio.sleep(0)

        run_async(scenario())

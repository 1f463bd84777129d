"""Tests for the TTL cache."""

from __future__ import annotations

import pytest

from contextsync.cache import CacheConfig, CacheEntry, TTLCache

from tests.helpers import ManualClock


@pytest.fixture
def cache(clock: ManualClock) -> TTLCache:
    return TTLCache(clock=clock.ns)


class TestCacheEntry:
    def test_fresh_only_strictly_before_ttl(self):
        entry = CacheEntry(key="k", value=1, stored_ns=10_000_000_000)

        assert entry.is_fresh(10_099_999_999, 100)
        assert not entry.is_fresh(10_100_000_000, 100)
        assert entry.age_ms(10_100_000_000) == 100

    def test_non_positive_ttl_never_fresh(self):
        entry = CacheEntry(key="k", value=1, stored_ns=10_000_000_000)

        assert not entry.is_fresh(10_000_000_000, 0)
        assert not entry.is_fresh(10_000_000_000, -5)


class TestExpiry:
    def test_hit_before_ttl_and_miss_after(self, cache: TTLCache, clock: ManualClock):
        """A value set with ttl 100ms is served at 99ms and gone at 101ms."""
        cache.set("k", "v")

        clock.advance_ms(99)
        assert cache.get("k", 100) == "v"

        clock.advance_ms(2)
        assert cache.get("k", 100) is None

    @pytest.mark.parametrize("ttl_ms", [1, 100, 300, 500, 10_000])
    def test_absent_at_exactly_ttl(self, cache: TTLCache, clock: ManualClock, ttl_ms: int):
        """An entry stored at T with ttl D is gone at exactly T + D."""
        cache.set("k", "v")

        clock.advance_ms(ttl_ms - 1)
        assert cache.get("k", ttl_ms) == "v"

        clock.advance_ms(1)
        assert cache.get("k", ttl_ms) is None

    def test_absent_at_exactly_ttl_after_many_small_steps(self, cache: TTLCache, clock: ManualClock):
        cache.set("k", "v")

        for _ in range(30):
            clock.advance_ms(10)

        assert cache.get("k", 300) is None

    def test_expired_entry_is_dropped_lazily(self, cache: TTLCache, clock: ManualClock):
        cache.set("k", "v")
        clock.advance_ms(500)

        assert "k" in cache
        assert cache.get("k", 100) is None
        assert "k" not in cache
        assert cache.stats is not None and cache.stats.expirations == 1

    def test_ttl_is_chosen_by_reader(self, cache: TTLCache, clock: ManualClock):
        cache.set("git_info", {"branch": "main"})
        clock.advance_ms(2_000)

        assert cache.get("git_info", 10_000) == {"branch": "main"}

    def test_lookup_distinguishes_cached_none(self, cache: TTLCache):
        cache.set("highlights_1_1", None)

        entry = cache.lookup("highlights_1_1", 1_000)
        assert entry is not None
        assert entry.value is None
        assert cache.lookup("missing", 1_000) is None


class TestOverwrite:
    def test_overwrite_stamps_new_time(self, cache: TTLCache, clock: ManualClock):
        """Overwriting at t=50 with ttl 100 keeps the new value until t=150."""
        cache.set("k", "a")
        clock.advance_ms(50)
        cache.set("k", "b")

        clock.advance_ms(60)
        assert cache.get("k", 100) == "b"

        clock.advance_ms(45)
        assert cache.get("k", 100) is None

    def test_no_reader_sees_old_value_after_set(self, cache: TTLCache):
        cache.set("k", "a")
        cache.set("k", "b")

        assert cache.get("k", 1_000) == "b"
        assert len(cache) == 1


class TestClearing:
    def test_clear_removes_prefix_matches(self, cache: TTLCache):
        cache.set("highlights_1_3", 1)
        cache.set("highlights_12_3", 2)
        cache.set("git_info", 3)

        removed = cache.clear("highlights_1_")

        assert removed == 1
        assert sorted(cache.keys()) == ["git_info", "highlights_12_3"]

    def test_clear_all(self, cache: TTLCache):
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.clear_all() == 2
        assert len(cache) == 0

    def test_family_supersedes_stale_discriminants(self, cache: TTLCache):
        cache.set("plugin_versions_100", ["old"], family="plugin_versions_")
        cache.set("plugin_versions_200", ["new"], family="plugin_versions_")

        assert cache.keys() == ["plugin_versions_200"]


class TestBounds:
    def test_lru_eviction(self, clock: ManualClock):
        cache = TTLCache(CacheConfig(max_entries=2), clock=clock.ns)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a", 1_000)
        cache.set("c", 3)

        assert sorted(cache.keys()) == ["a", "c"]
        assert cache.stats is not None and cache.stats.evictions == 1

    def test_stats_disabled(self, clock: ManualClock):
        cache = TTLCache(CacheConfig(track_stats=False), clock=clock.ns)
        cache.get("missing", 100)

        assert cache.stats is None


class TestGetOrLoad:
    def test_loader_runs_once_while_fresh(self, cache: TTLCache, clock: ManualClock):
        calls = []

        def loader():
            calls.append(1)
            return len(calls)

        assert cache.get_or_load("k", 100, loader) == 1
        clock.advance_ms(50)
        assert cache.get_or_load("k", 100, loader) == 1
        clock.advance_ms(100)
        assert cache.get_or_load("k", 100, loader) == 2

    def test_hit_rate(self, cache: TTLCache):
        cache.set("k", 1)
        cache.get("k", 100)
        cache.get("other", 100)

        stats = cache.stats
        assert stats is not None
        assert stats.hit_rate == 0.5
        assert stats.to_dict()["total_requests"] == 2

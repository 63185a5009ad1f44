"""
Unit tests for the TTL + LRU validation cache.

Tests cover expiry, LRU eviction by count and by memory, invalidation,
statistics and health classification.
"""

import threading

import pytest

from sandbox_seeder.domain.exceptions import CacheError
from sandbox_seeder.infrastructure.cache import CacheHealthStatus, ValidationCache, estimate_size
from sandbox_seeder.infrastructure.cache.validation_cache import ENTRY_OVERHEAD_BYTES


@pytest.fixture
def cache(fake_clock):
    return ValidationCache(default_ttl=60, max_size=3, clock=fake_clock, name="test")


class TestConstruction:
    """Test configuration validation"""

    @pytest.mark.parametrize(
        "kwargs",
        [{"default_ttl": 0}, {"max_size": 0}, {"max_memory_mb": 0}],
    )
    def test_invalid_arguments(self, kwargs):
        """Non-positive limits are rejected"""
        with pytest.raises(CacheError):
            ValidationCache(**kwargs)

    def test_non_positive_entry_ttl(self, cache):
        """A per-entry ttl must also be positive"""
        with pytest.raises(CacheError):
            cache.set("k", "v", ttl=0)


class TestExpiry:
    """Test time-to-live behaviour"""

    def test_hit_before_ttl(self, cache, fake_clock):
        """Entries are served until they reach their ttl"""
        cache.set("k", {"a": 1})
        fake_clock.advance(59.9)
        assert cache.get("k") == {"a": 1}

    def test_miss_at_ttl(self, cache, fake_clock):
        """An entry exactly ttl seconds old is a miss"""
        cache.set("k", "v")
        fake_clock.advance(60)
        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.get_stats().expirations == 1

    def test_custom_ttl(self, cache, fake_clock):
        """set() can override the default ttl"""
        cache.set("short", "v", ttl=5)
        fake_clock.advance(5)
        assert "short" not in cache

    def test_purge_expired(self, cache, fake_clock):
        """purge_expired drops only expired entries"""
        cache.set("old", 1, ttl=10)
        cache.set("new", 2)
        fake_clock.advance(10)
        assert cache.purge_expired() == 1
        assert "new" in cache
        assert "old" not in cache


class TestEviction:
    """Test least-recently-used eviction"""

    def test_evicts_least_recently_used(self, cache):
        """Reading an entry protects it from eviction"""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")
        cache.set("d", 4)

        assert "b" not in cache
        assert all(key in cache for key in ("a", "c", "d"))
        assert cache.get_stats().evictions == 1

    def test_replacing_key_does_not_evict(self, cache):
        """Overwriting a key keeps the entry count"""
        for key in ("a", "b", "c"):
            cache.set(key, key)
        cache.set("b", "again")
        assert len(cache) == 3
        assert cache.get("b") == "again"

    def test_memory_budget(self, fake_clock):
        """Entries are evicted once the estimated footprint is over budget"""
        budget_mb = (ENTRY_OVERHEAD_BYTES * 2.5) / (1024 * 1024)
        cache = ValidationCache(max_size=100, max_memory_mb=budget_mb, clock=fake_clock)
        for key in ("a", "b", "c"):
            cache.set(key, "x")

        assert len(cache) == 2
        assert "a" not in cache

    def test_oversized_single_entry_kept(self, fake_clock):
        """The newest entry is never evicted to make room for itself"""
        cache = ValidationCache(max_memory_mb=0.001, clock=fake_clock)
        cache.set("big", "x" * 10_000)
        assert "big" in cache

    def test_size_estimate(self):
        """Size is serialized length doubled plus overhead"""
        assert estimate_size("ab") == len('"ab"') * 2 + ENTRY_OVERHEAD_BYTES
        assert estimate_size(object()) > ENTRY_OVERHEAD_BYTES


class TestInvalidation:
    """Test explicit removal"""

    def test_prefix(self, cache):
        """Only keys with the prefix are removed"""
        cache.set("context:Account", 1)
        cache.set("context:Contact", 2)
        cache.set("result:1", 3)
        assert cache.invalidate(prefix="context:") == 2
        assert "result:1" in cache

    def test_older_than(self, cache, fake_clock):
        """Age and prefix criteria combine"""
        cache.set("context:old", 1)
        fake_clock.advance(30)
        cache.set("context:new", 2)
        assert cache.invalidate(prefix="context:", older_than=30) == 1
        assert "context:new" in cache

    def test_delete(self, cache):
        """delete reports whether the key existed"""
        cache.set("k", 1)
        assert cache.delete("k") is True
        assert cache.delete("k") is False

    def test_clear_resets_stats(self, cache):
        """clear drops entries and statistics"""
        cache.set("k", 1)
        cache.get("k")
        cache.get("missing")
        cache.clear()

        stats = cache.get_stats()
        assert stats.entries_count == 0
        assert stats.total_requests == 0
        assert stats.total_size_bytes == 0


class TestStatsAndHealth:
    """Test statistics and health reporting"""

    def test_stats(self, cache, fake_clock):
        """Hit rate and entry ages are reported"""
        cache.set("a", 1)
        fake_clock.advance(10)
        cache.set("b", 2)
        cache.get("a")
        cache.get("zzz")

        stats = cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5
        assert stats.oldest_entry_age == 10
        assert stats.newest_entry_age == 0

    def test_contains_is_not_an_access(self, cache):
        """Membership checks do not count as requests"""
        cache.set("a", 1)
        assert "a" in cache
        assert cache.get_stats().total_requests == 0

    def test_low_hit_rate_warning(self, cache):
        """Mostly-missing caches are flagged"""
        for key in ("x", "y", "z"):
            cache.get(key)
        health = cache.get_health_info()
        assert health.status is CacheHealthStatus.WARNING
        assert health.issues[0].startswith("Low hit rate")

    def test_excellent_hit_rate(self, fake_clock):
        """A high hit rate is healthy and noted"""
        cache = ValidationCache(max_size=100, clock=fake_clock)
        cache.set("a", 1)
        for _ in range(9):
            cache.get("a")
        health = cache.get_health_info()
        assert health.status is CacheHealthStatus.HEALTHY
        assert health.recommendations[0].startswith("Excellent hit rate")

    def test_nearly_full(self, fake_clock):
        """More than 90% of max_size is a warning"""
        cache = ValidationCache(max_size=10, clock=fake_clock)
        for index in range(10):
            cache.set(str(index), index)
        health = cache.get_health_info()
        assert health.status is CacheHealthStatus.WARNING
        assert any(issue.startswith("Cache nearly full") for issue in health.issues)

    def test_memory_critical(self, fake_clock):
        """More than 90% of the memory budget is critical"""
        cache = ValidationCache(max_memory_mb=0.001, clock=fake_clock)
        cache.set("big", "x" * 1000)
        assert cache.get_health_info().status is CacheHealthStatus.CRITICAL


class TestThreadSafety:
    """Test concurrent access"""

    def test_concurrent_writers(self):
        """Concurrent sets never exceed the size limit"""
        cache = ValidationCache(max_size=50)

        def writer(offset):
            for index in range(200):
                cache.set(f"{offset}:{index}", index)
                cache.get(f"{offset}:{index - 1}")

        threads = [threading.Thread(target=writer, args=(offset,)) for offset in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 50
        assert cache.get_stats().entries_count == 50

"""
Unit tests for the response cache.

Tests TTL expiry, LRU eviction, and cache key derivation.
"""

import threading

import pytest

from ai_gateway.core.cache import ResponseCache, make_cache_key


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestCacheExpiry:
    """Test time-to-live behavior."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ResponseCache(max_size=10, ttl_ms=1000, clock=self.clock)

    def test_entry_present_before_ttl(self):
        """Entry is served just before its TTL passes."""
        self.cache.set("k", "v")
        self.clock.advance(0.999)
        assert self.cache.get("k") == "v"

    def test_entry_absent_after_ttl(self):
        """Expired entry behaves as a miss and is removed."""
        self.cache.set("k", "v")
        self.clock.advance(1.001)
        assert self.cache.get("k") is None
        assert self.cache.size() == 0

    def test_has_respects_expiry(self):
        self.cache.set("k", "v")
        assert self.cache.has("k")
        self.clock.advance(2)
        assert not self.cache.has("k")

    def test_reinsert_resets_ttl(self):
        self.cache.set("k", "v1")
        self.clock.advance(0.8)
        self.cache.set("k", "v2")
        self.clock.advance(0.8)
        assert self.cache.get("k") == "v2"

    def test_sweep_expired(self):
        """Periodic sweep removes only expired entries."""
        self.cache.set("old", 1)
        self.clock.advance(0.6)
        self.cache.set("new", 2)
        self.clock.advance(0.6)

        assert self.cache.sweep_expired() == 1
        assert self.cache.size() == 1
        assert self.cache.get("new") == 2


class TestCacheCapacity:
    """Test least-recently-used eviction."""

    def setup_method(self):
        self.cache = ResponseCache(max_size=3, ttl_ms=60000, clock=FakeClock())

    def test_overflow_evicts_least_recently_inserted(self):
        """Inserting max_size + 1 keys leaves exactly max_size entries."""
        for key in ("a", "b", "c", "d"):
            self.cache.set(key, key.upper())

        assert self.cache.size() == 3
        assert self.cache.get("a") is None
        assert self.cache.get("d") == "D"

    def test_get_refreshes_recency(self):
        """The evicted entry is the least recently accessed one."""
        for key in ("a", "b", "c"):
            self.cache.set(key, key)
        self.cache.get("a")
        self.cache.set("d", "d")

        assert self.cache.has("a")
        assert not self.cache.has("b")
        assert self.cache.has("c")
        assert self.cache.has("d")

    def test_has_does_not_refresh_recency(self):
        for key in ("a", "b", "c"):
            self.cache.set(key, key)
        self.cache.has("a")
        self.cache.set("d", "d")

        assert not self.cache.has("a")

    def test_overwrite_does_not_grow(self):
        self.cache.set("a", 1)
        self.cache.set("a", 2)
        assert self.cache.size() == 1
        assert self.cache.get("a") == 2

    def test_delete_and_clear(self):
        self.cache.set("a", 1)
        self.cache.set("b", 2)

        assert self.cache.delete("a") is True
        assert self.cache.delete("a") is False
        self.cache.clear()
        assert self.cache.size() == 0

    def test_concurrent_sets_respect_capacity(self):
        """Concurrent writers never push the cache past max_size."""
        cache = ResponseCache(max_size=50, ttl_ms=60000)

        def writer(offset: int) -> None:
            for i in range(200):
                cache.set(f"{offset}-{i}", i)
                cache.get(f"{offset}-{i // 2}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert cache.size() == 50

    def test_invalid_limits(self):
        with pytest.raises(ValueError, match="max_size"):
            ResponseCache(max_size=0)
        with pytest.raises(ValueError, match="ttl_ms"):
            ResponseCache(ttl_ms=0)


class TestCacheKey:
    """Test deterministic cache key derivation."""

    messages = [{"role": "user", "content": "Plan a party"}]

    def test_same_input_same_key(self):
        options = {"model": "gpt-4o", "temperature": 0.7}
        reordered = {"temperature": 0.7, "model": "gpt-4o"}
        assert make_cache_key(self.messages, options) == make_cache_key(self.messages, reordered)

    def test_option_change_changes_key(self):
        base = make_cache_key(self.messages, {"model": "gpt-4o", "temperature": 0.7})
        changed = make_cache_key(self.messages, {"model": "gpt-4o", "temperature": 0.2})
        assert base != changed

    def test_message_change_changes_key(self):
        options = {"model": "gpt-4o"}
        other = [{"role": "user", "content": "Plan a wedding"}]
        assert make_cache_key(self.messages, options) != make_cache_key(other, options)

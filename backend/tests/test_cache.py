"""
Tests for the in-process TTL cache.
"""

import pytest

from looptrading.core.cache import TTLCache, cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLCache:
    def test_get_before_expiry(self, clock):
        cache = TTLCache(default_ttl=900, clock=clock)
        cache.set("market:quote:AAPL", {"price": 1})
        clock.now += 899
        assert cache.get("market:quote:AAPL") == {"price": 1}

    def test_expires_after_ttl(self, clock):
        """Entries are unreadable once the TTL has elapsed."""
        cache = TTLCache(default_ttl=900, clock=clock)
        cache.set("k", "v")
        clock.now += 900
        assert cache.get("k") is None
        # evicted on read
        assert cache.delete("k") is False

    def test_per_entry_ttl(self, clock):
        cache = TTLCache(default_ttl=900, clock=clock)
        cache.set("short", 1, ttl=10)
        cache.set("long", 2)
        clock.now += 11
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_delete_and_clear(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.get("b") == 2
        cache.clear()
        assert cache.get("b") is None

    def test_delete_many(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete_many(["a", "b", "c"]) == 2

    @pytest.mark.asyncio
    async def test_get_or_set(self, clock):
        cache = TTLCache(clock=clock)
        calls = []

        async def factory():
            calls.append(1)
            return "computed"

        assert await cache.get_or_set("k", factory) == "computed"
        assert await cache.get_or_set("k", factory) == "computed"
        assert len(calls) == 1


def test_cache_key():
    assert cache_key("market", "history", "AAPL", "3m") == "market:history:AAPL:3m"

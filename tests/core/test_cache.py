"""
Tests for strata.core.cache module.

Covers:
- InMemoryCache: get/set/delete/exists/clear, LRU eviction, TTL expiry
- InMemoryCache: hit/miss stats and prefix invalidation
- RedisCache (redis.asyncio): JSON round trip, TTL handling and prefix invalidation against a fake client
- cache_from_settings: redis_url / cache_max_size selection
"""

import time

import pytest

from conftest import FakeRedis
from strata.core.cache import CacheBackend, InMemoryCache, RedisCache, cache_from_settings
from strata.core.settings import StrataSettings


class TestInMemoryCache:
    """Test InMemoryCache backend."""

    def test_protocol(self):
        assert isinstance(InMemoryCache(), CacheBackend)

    def test_basic_get_set(self):
        """Cache should store and retrieve values."""
        cache = InMemoryCache(max_size=100, default_ttl_seconds=None)
        cache.set("key1", {"data": [1, 2, 3]})
        assert cache.get("key1") == {"data": [1, 2, 3]}

    def test_get_missing_key(self):
        assert InMemoryCache().get("missing") is None

    def test_delete(self):
        cache = InMemoryCache()
        cache.set("key1", "value1")
        assert cache.exists("key1")
        cache.delete("key1")
        assert not cache.exists("key1")

    def test_clear(self):
        cache = InMemoryCache()
        cache.set("k1", 1)
        cache.set("k2", 2)
        assert cache.size() == 2
        cache.clear()
        assert cache.size() == 0

    def test_zero_is_a_value(self):
        cache = InMemoryCache()
        cache.set("count", 0)
        assert cache.get("count") == 0

    def test_ttl_expiry(self):
        """Keys should expire after TTL."""
        cache = InMemoryCache(default_ttl_seconds=1)
        cache.set("temp", "value", ttl_seconds=1)
        assert cache.exists("temp")
        time.sleep(1.1)
        assert cache.get("temp") is None

    def test_lru_eviction(self):
        """Least recently used key is evicted at capacity."""
        cache = InMemoryCache(max_size=2, default_ttl_seconds=None)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3


class TestRedisCache:
    async def test_round_trip(self):
        client = FakeRedis()
        cache = RedisCache(client=client, default_ttl_seconds=None)
        await cache.set("users::find::x", [{"id": 1}])
        assert client.store["users::find::x"] == '[{"id": 1}]'
        assert await cache.get("users::find::x") == [{"id": 1}]
        assert await cache.exists("users::find::x")

    async def test_ttl_uses_setex(self):
        client = FakeRedis()
        cache = RedisCache(client=client, default_ttl_seconds=600)
        await cache.set("k", 1)
        await cache.set("j", 2, ttl_seconds=5)
        assert client.ttls == {"k": 600, "j": 5}

    async def test_delete_and_clear(self):
        client = FakeRedis()
        cache = RedisCache(client=client)
        await cache.set("k", 1)
        await cache.delete("k")
        assert await cache.get("k") is None
        await cache.set("j", 1)
        await cache.clear()
        assert client.store == {}

    async def test_drop_prefix(self):
        client = FakeRedis()
        cache = RedisCache(client=client, default_ttl_seconds=None)
        await cache.set("users::read::a", 1)
        await cache.set("orders::read::a", 2)
        assert await cache.drop_prefix("users::") == 1
        assert list(client.store) == ["orders::read::a"]

    async def test_aclose(self):
        client = FakeRedis()
        await RedisCache(client=client).aclose()
        assert client.closed


class TestCacheFromSettings:
    def test_in_memory_by_default(self):
        settings = StrataSettings(_env_file=None, cache_max_size=2, cache_ttl_seconds=9)
        cache = cache_from_settings(settings)
        assert isinstance(cache, InMemoryCache)
        assert (cache.max_size, cache.default_ttl_seconds) == (2, 9)

    def test_redis_when_url_set(self):
        pytest.importorskip("redis")
        settings = StrataSettings(_env_file=None, redis_url="redis://localhost:6379/3", cache_ttl_seconds=9)
        cache = cache_from_settings(settings)
        assert isinstance(cache, RedisCache)
        assert cache.default_ttl_seconds == 9


class TestInMemoryBookkeeping:
    def test_stats(self):
        cache = InMemoryCache(default_ttl_seconds=None)
        cache.set("users::count::x", 3)
        cache.get("users::count::x")
        cache.get("users::count::y")
        assert cache.stats() == {"size": 1, "hits": 1, "misses": 1}

    def test_drop_prefix(self):
        cache = InMemoryCache(default_ttl_seconds=None)
        cache.set("users::read::a", 1)
        cache.set("users::query::b", 2)
        cache.set("orders::read::a", 3)
        assert cache.drop_prefix("users::") == 2
        assert cache.size() == 1
        assert cache.get("orders::read::a") == 3

    def test_max_size_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryCache(max_size=0)

"""
Unit tests for the pool cache layer.

Covers:
- No-op default cache
- In-memory TTL and prefix invalidation
- Error isolation in every public operation
- Redis fallback to memory
- Key helpers
"""

import pytest

from request_pool import cache as cache_module
from request_pool.cache import (
    PoolCache,
    MemoryCache,
    RedisCache,
    create_cache,
    matching_key,
    listing_key,
    listing_pattern,
    request_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class BrokenCache(MemoryCache):
    """Backend whose every call fails."""

    async def _get(self, key):
        raise ConnectionError('backend down')

    async def _set(self, key, value, ttl):
        raise ConnectionError('backend down')

    async def _delete(self, key):
        raise TimeoutError('backend down')

    async def _clear_pattern(self, pattern):
        raise OSError('backend down')


@pytest.mark.unit
class TestNoopCache:
    """PoolCache."""

    async def test_never_stores(self):
        cache = PoolCache()

        assert await cache.set('key', {'a': 1}) is False
        assert await cache.get('key') is None
        assert await cache.delete('key') is False
        assert await cache.clear_pattern('key*') == 0
        assert (await cache.get_stats())['backend'] == 'none'

    async def test_create_cache_disabled(self):
        cache = await create_cache(use_redis=False)

        assert type(cache) is PoolCache


@pytest.mark.unit
class TestMemoryCache:
    """MemoryCache."""

    async def test_ttl(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set('key', [1, 2, 3], ttl=120)

        clock.now += 119
        assert await cache.get('key') == [1, 2, 3]

        clock.now += 1
        assert await cache.get('key') is None

    async def test_hit_returns_copy(self):
        cache = MemoryCache()
        value = {'requests': [{'id': 1}]}
        await cache.set('key', value)

        hit = await cache.get('key')
        hit['requests'].append({'id': 2})

        assert await cache.get('key') == value

    async def test_clear_pattern_is_prefix_scoped(self):
        cache = MemoryCache()
        await cache.set(listing_key(4, 1, 20), 'a')
        await cache.set(listing_key(4, 2, 20), 'b')
        await cache.set(listing_key(42, 1, 20), 'c')
        await cache.set(request_key(4), 'd')

        assert await cache.clear_pattern(listing_pattern(4)) == 2

        assert await cache.get(listing_key(42, 1, 20)) == 'c'
        assert await cache.get(request_key(4)) == 'd'

    async def test_delete_and_clear(self):
        cache = MemoryCache()
        await cache.set('a', 1)
        await cache.set('b', 2)

        assert await cache.delete('a') is True
        assert await cache.delete('a') is False

        cache.clear()
        assert (await cache.get_stats())['keys_count'] == 0


@pytest.mark.unit
class TestErrorIsolation:
    """Backend failures never reach callers."""

    async def test_failures_are_swallowed(self):
        cache = BrokenCache()

        assert await cache.get('key') is None
        assert await cache.set('key', 1) is False
        assert await cache.delete('key') is False
        assert await cache.clear_pattern('key*') == 0


@pytest.mark.unit
class TestRedisCache:
    """RedisCache without a reachable server."""

    async def test_falls_back_to_memory(self):
        cache = RedisCache('redis://localhost:1/0')

        assert cache.backend == 'memory'
        await cache.set('key', {'a': 1})
        assert await cache.get('key') == {'a': 1}
        assert await cache.clear_pattern('k*') == 1

    async def test_failed_connect(self, monkeypatch):
        class UnreachableRedis:
            async def ping(self):
                raise ConnectionError('connection refused')

        monkeypatch.setattr(cache_module.aioredis, 'from_url', lambda *args, **kwargs: UnreachableRedis())
        cache = RedisCache('redis://localhost:1/0')

        assert await cache.connect() is False
        assert cache.is_connected is False
        assert await cache.set('key', 1) is True


@pytest.mark.unit
class TestKeys:
    """Key helpers."""

    def test_formats(self):
        assert matching_key('warsaw', 3000.0) == 'matching_landlords:warsaw:3000.0'
        assert listing_key(7, 2, 10) == 'landlord_requests:7:2:10'
        assert listing_pattern(7) == 'landlord_requests:7:*'
        assert request_key(15) == 'request:15'

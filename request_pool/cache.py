"""
Caching layer for the request pool.

The cache is an accelerator only. PoolCache is a no-op and the default;
MemoryCache keeps values in-process with TTL; RedisCache uses Redis and
falls back to memory if Redis is unavailable.

Every public operation swallows backend errors: a failed read is a miss,
a failed write or invalidation is a no-op.

Feature flag: redis_cache (config/features.yaml)
"""

import json
import time
import logging
from typing import Any, Optional, Dict, Tuple

from request_pool.config import PoolConfig

logger = logging.getLogger(__name__)

try:
    import redis.asyncio as aioredis
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    logger.warning("⚠️ redis package not installed. Using in-memory cache fallback.")


class PoolCache:
    """
    Cache interface with no-op storage.

    Subclasses override the underscore methods; the public methods add
    error isolation so callers never branch on cache health.
    """

    backend = 'none'

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache, None on miss or error."""
        try:
            return await self._get(key)
        except Exception as e:
            logger.warning(f"Cache get error ({self.backend}) for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = PoolConfig.REQUEST_TTL) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds

        Returns:
            True if stored
        """
        try:
            return await self._set(key, value, ttl)
        except Exception as e:
            logger.warning(f"Cache set error ({self.backend}) for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            return await self._delete(key)
        except Exception as e:
            logger.warning(f"Cache delete error ({self.backend}) for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a prefix pattern.

        Args:
            pattern: Key pattern (e.g., 'landlord_requests:42:*')

        Returns:
            Number of deleted keys
        """
        try:
            return await self._clear_pattern(pattern)
        except Exception as e:
            logger.warning(f"Cache clear_pattern error ({self.backend}) for {pattern}: {e}")
            return 0

    async def get_stats(self) -> dict:
        """Get cache statistics."""
        return {'backend': self.backend}

    async def close(self):
        """Release backend resources."""

    # ============================================
    # Backend hooks
    # ============================================

    async def _get(self, key: str) -> Optional[Any]:
        return None

    async def _set(self, key: str, value: Any, ttl: int) -> bool:
        return False

    async def _delete(self, key: str) -> bool:
        return False

    async def _clear_pattern(self, pattern: str) -> int:
        return 0


class MemoryCache(PoolCache):
    """In-process cache with per-key expiry."""

    backend = 'memory'

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._store: Dict[str, Tuple[float, str]] = {}

    async def _get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None

        expires_at, payload = entry
        if expires_at <= self._clock():
            self._store.pop(key, None)
            return None

        return json.loads(payload)

    async def _set(self, key: str, value: Any, ttl: int) -> bool:
        # Stored serialized so hits return fresh copies, same as Redis
        payload = json.dumps(value, ensure_ascii=False, default=str)
        self._store[key] = (self._clock() + ttl, payload)
        return True

    async def _delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def _clear_pattern(self, pattern: str) -> int:
        prefix = pattern.replace('*', '')
        to_delete = [k for k in self._store if k.startswith(prefix)]
        for k in to_delete:
            del self._store[k]
        return len(to_delete)

    async def get_stats(self) -> dict:
        return {
            'backend': self.backend,
            'keys_count': len(self._store),
        }

    def clear(self):
        """Drop all entries."""
        self._store.clear()


class RedisCache(MemoryCache):
    """
    Redis-backed cache.

    Uses Redis when connected, falls back to the in-memory store otherwise.
    """

    def __init__(self, redis_url: str = PoolConfig.REDIS_URL):
        super().__init__()
        self.redis_url = redis_url
        self._redis = None
        self._connected = False

    @property
    def backend(self) -> str:
        return 'redis' if self._connected else 'memory'

    @property
    def is_connected(self) -> bool:
        """Check if Redis is connected."""
        return self._connected

    async def connect(self) -> bool:
        """Connect to Redis."""
        if not REDIS_AVAILABLE:
            logger.info("ℹ️ Redis not available, using in-memory cache")
            return False

        try:
            self._redis = aioredis.from_url(
                self.redis_url,
                max_connections=PoolConfig.REDIS_MAX_CONNECTIONS,
                decode_responses=True
            )
            await self._redis.ping()
            self._connected = True
            logger.info("✅ Redis cache connected")
            return True
        except Exception as e:
            logger.warning(f"⚠️ Redis connection failed: {e}. Using in-memory cache.")
            self._connected = False
            return False

    async def close(self):
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._connected = False
            logger.info("Redis cache disconnected")

    async def _get(self, key: str) -> Optional[Any]:
        if not self._connected:
            return await super()._get(key)

        value = await self._redis.get(key)
        if value is None:
            return None
        return json.loads(value)

    async def _set(self, key: str, value: Any, ttl: int) -> bool:
        if not self._connected:
            return await super()._set(key, value, ttl)

        serialized = json.dumps(value, ensure_ascii=False, default=str)
        await self._redis.setex(key, ttl, serialized)
        return True

    async def _delete(self, key: str) -> bool:
        if not self._connected:
            return await super()._delete(key)

        return bool(await self._redis.delete(key))

    async def _clear_pattern(self, pattern: str) -> int:
        if not self._connected:
            return await super()._clear_pattern(pattern)

        keys = [key async for key in self._redis.scan_iter(match=pattern)]
        if not keys:
            return 0
        return await self._redis.delete(*keys)

    async def get_stats(self) -> dict:
        if not self._connected:
            return await super().get_stats()

        stats = {'backend': self.backend, 'connected': True}
        try:
            info = await self._redis.info('memory')
            stats['memory_used'] = info.get('used_memory_human', 'N/A')
            stats['keys_count'] = await self._redis.dbsize()
        except Exception as e:
            logger.warning(f"Redis stats error: {e}")
            stats['error'] = str(e)
        return stats


# ============================================
# Key helpers
# ============================================

def matching_key(location: str, budget: float) -> str:
    """Cache key for candidate landlords of a (location, budget) pair."""
    return f"{PoolConfig.PREFIX_MATCHING}{location}:{budget}"


def matching_pattern() -> str:
    """Pattern matching every cached candidate list."""
    return f"{PoolConfig.PREFIX_MATCHING}*"


def listing_key(landlord_id: int, page: int, limit: int) -> str:
    """Cache key for one page of a landlord's listing."""
    return f"{PoolConfig.PREFIX_LISTING}{landlord_id}:{page}:{limit}"


def listing_pattern(landlord_id: int) -> str:
    """Pattern matching every cached listing page of a landlord."""
    return f"{PoolConfig.PREFIX_LISTING}{landlord_id}:*"


def request_key(request_id: int) -> str:
    """Cache key for a pooled rental request."""
    return f"{PoolConfig.PREFIX_REQUEST}{request_id}"


async def create_cache(use_redis: bool, redis_url: str = PoolConfig.REDIS_URL) -> PoolCache:
    """Build the configured cache; no-op cache when Redis is disabled."""
    if not use_redis:
        logger.info("ℹ️ Redis cache disabled, pool runs without cache")
        return PoolCache()

    cache = RedisCache(redis_url)
    await cache.connect()
    return cache

"""Shared key-value cache used for login tickets and lookup results.

The gateway only needs two operations, ``get`` and ``set`` with a TTL, both
over string values. Two backends implement them:

- **RedisCacheStore**: shared across workers and processes (production)
- **InMemoryCacheStore**: bounded LRU inside the process (development, tests)

Both backends fail soft. A cache that is down, slow or returns garbage must
never fail a lookup, so every backend error is logged and turned into a miss
(``get`` returns None) or a rejected write (``set`` returns False).
"""

import time
from collections import OrderedDict
from typing import Protocol

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from src.core.config import CacheConfig


class CacheStore(Protocol):
    """Protocol for the cache collaborator."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None on miss or backend failure."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store a value for ``ttl_seconds``; False when the write failed."""
        ...

    async def ping(self) -> bool:
        """Report whether the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class InMemoryCacheStore:
    """Bounded in-process cache with per-key expiration.

    Expired entries are dropped lazily on read; the least recently used entry
    is evicted when ``max_entries`` is reached.
    """

    def __init__(self, *, max_entries: int = 10_000, key_prefix: str = "") -> None:
        self._store: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._max_entries = max_entries
        self._key_prefix = key_prefix

    async def get(self, key: str) -> str | None:
        full_key = self._key_prefix + key
        entry = self._store.get(full_key)
        if entry is None:
            return None

        value, expires_at = entry
        if time.monotonic() >= expires_at:
            self._store.pop(full_key, None)
            return None

        self._store.move_to_end(full_key)
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False

        full_key = self._key_prefix + key
        self._store[full_key] = (value, time.monotonic() + ttl_seconds)
        self._store.move_to_end(full_key)
        while len(self._store) > self._max_entries:
            self._store.popitem(last=False)
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


class RedisCacheStore:
    """Redis-backed cache shared by every gateway worker."""

    def __init__(self, client: redis.Redis, *, key_prefix: str = "") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_config(cls, config: CacheConfig) -> "RedisCacheStore":
        """Create a store with its own connection pool.

        Args:
            config: Cache configuration.

        Returns:
            RedisCacheStore: Store bound to ``config.redis_url``.
        """
        client = redis.Redis.from_url(
            config.redis_url,
            decode_responses=True,
            socket_timeout=config.socket_timeout_seconds,
            socket_connect_timeout=config.socket_timeout_seconds,
        )
        return cls(client, key_prefix=config.key_prefix)

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(self._key_prefix + key)
        except (RedisError, OSError, TimeoutError) as e:
            logger.warning(
                "Cache read failed, treating as miss: {}",
                type(e).__name__,
                cache_key=key,
            )
            return None
        return None if value is None else str(value)

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        try:
            await self._client.set(self._key_prefix + key, value, ex=ttl_seconds)
        except (RedisError, OSError, TimeoutError) as e:
            logger.warning(
                "Cache write failed: {}",
                type(e).__name__,
                cache_key=key,
                ttl_seconds=ttl_seconds,
            )
            return False
        return True

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError, TimeoutError) as e:
            logger.warning("Cache ping failed: {}", type(e).__name__)
            return False

    async def close(self) -> None:
        await self._client.aclose()


def create_cache_store(config: CacheConfig) -> CacheStore:
    """Build the cache backend selected by configuration.

    Args:
        config: Cache configuration.

    Returns:
        CacheStore: The configured backend.
    """
    if config.backend == "redis":
        logger.info("Using Redis cache backend")
        return RedisCacheStore.from_config(config)

    logger.info("Using in-memory cache backend", max_entries=config.max_entries)
    return InMemoryCacheStore(
        max_entries=config.max_entries, key_prefix=config.key_prefix
    )

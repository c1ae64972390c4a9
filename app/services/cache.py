"""Read-through cache for derived progress views.

Progress summaries are expensive to assemble (subjects x tasks x trainee
records) and read far more often than they change.  Entries carry a TTL
as a safety net, and every progression write on a course drops that
course's entries explicitly (delete_prefix), so a summary is never
staler than the TTL even if an invalidation is missed.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from app.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix; returns how many were dropped."""
        ...


class InMemoryCacheService:
    """Process-local cache with lazy TTL expiry.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}

    def clear(self) -> None:
        self._store.clear()

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._store if k.startswith(prefix)]
        for k in doomed:
            del self._store[k]
        return len(doomed)


class RedisCacheService:
    """Redis-backed cache shared by every API instance."""

    # Keeps cache keys apart from rate-limit buckets and queues
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")

    async def delete_prefix(self, prefix: str) -> int:
        # SCAN, not KEYS: KEYS blocks the server for the whole keyspace.
        dropped = 0
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor, match=f"{self._PREFIX}{prefix}*", count=100
            )
            if keys:
                dropped += await self._redis.delete(*keys)
            if cursor == 0:
                break
        return dropped


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()

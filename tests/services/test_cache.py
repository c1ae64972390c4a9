"""In-memory cache: TTL expiry and course-wide invalidation."""

from __future__ import annotations

import asyncio

from app.services.cache import CacheService, InMemoryCacheService


def test_in_memory_cache_satisfies_protocol() -> None:
    assert isinstance(InMemoryCacheService(), CacheService)


def test_get_returns_what_was_set() -> None:
    cache = InMemoryCacheService()

    async def run():
        await cache.set("progress:c1:t1", '{"percent": 50}', ttl_seconds=60)
        return await cache.get("progress:c1:t1")

    assert asyncio.run(run()) == '{"percent": 50}'


def test_miss_returns_none() -> None:
    assert asyncio.run(InMemoryCacheService().get("progress:nope")) is None


def test_expired_entry_is_a_miss() -> None:
    cache = InMemoryCacheService()

    async def run():
        await cache.set("progress:c1:t1", "stale", ttl_seconds=0)
        return await cache.get("progress:c1:t1")

    assert asyncio.run(run()) is None


def test_delete_prefix_drops_only_that_course() -> None:
    cache = InMemoryCacheService()

    async def run():
        for key in ("progress:c1:t1", "progress:c1:t2", "progress:c2:t1"):
            await cache.set(key, "x", ttl_seconds=60)
        dropped = await cache.delete_prefix("progress:c1:")
        return dropped, await cache.get("progress:c1:t2"), await cache.get("progress:c2:t1")

    assert asyncio.run(run()) == (2, None, "x")


def test_delete_missing_key_is_a_noop() -> None:
    asyncio.run(InMemoryCacheService().delete("progress:absent"))

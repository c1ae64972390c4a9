"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a shared connection pool
is created at import; when it is unset every consumer (progress cache,
rate limiter, email queue) falls back to its in-memory implementation
and no Redis server is needed.

Redis holds only ephemeral or shared-across-processes state here.  Course
progression data always lives in PostgreSQL.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

# Consumers check for None and use their in-memory fallback.
if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # str instead of bytes
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    """Return True when Redis answers, False when it is down or unconfigured."""
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db().

    A failed ping at startup is logged but does not stop the app: it
    starts degraded and /health reports Redis as down.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, Redis features use in-memory fallbacks")
        yield
        return

    if await ping_redis():
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    else:
        logger.error("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")

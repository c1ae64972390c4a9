"""Liveness and readiness checks.

/health (liveness) answers "is the process alive?" and always returns
200; the body says which backing services are degraded.  Restarting the
container because Redis is down would only make things worse.

/ready (readiness) answers "can this instance take traffic?".  PostgreSQL
holds every course and enrollment, so an unreachable database makes the
instance unready (503).  Redis is not critical: the cache and rate
limiter degrade instead of failing requests.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from app.db import engine as db
from app.db.redis import ping_redis, redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

NOT_CONFIGURED = "not_configured"


async def _check_database() -> str:
    if db.engine is None:
        return NOT_CONFIGURED
    try:
        async with db.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_redis() -> str:
    if redis_pool is None:
        return NOT_CONFIGURED
    return "ok" if await ping_redis() else "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {"database": await _check_database(), "redis": await _check_redis()}
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)

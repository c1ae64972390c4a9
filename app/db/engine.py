"""Postgres access through SQLAlchemy's asyncio extension (asyncpg driver).

With DATABASE_URL unset, ``engine`` and ``async_session_factory`` stay
None and every repo factory falls back to its in-memory implementation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

# session.info key for callbacks that must only see committed data
AFTER_COMMIT = "after_commit"


class Base(DeclarativeBase):
    pass


def _build_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        # progression writes hold a course row lock; keep the pool small
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


engine: AsyncEngine | None = (
    _build_engine(SETTINGS.database_url) if SETTINGS.database_url else None
)
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: committed if the block exits cleanly, rolled back if it raises."""
    if async_session_factory is None:
        raise RuntimeError("DATABASE_URL is not configured, no database session")
    async with async_session_factory.begin() as session:
        yield session
    await run_after_commit(session)


async def run_after_commit(session: AsyncSession) -> None:
    """Drain the callbacks repos queued with after_commit(), in order.

    The data is already committed here, so a failing callback is logged and
    the rest still run.
    """
    for fn, args in session.info.pop(AFTER_COMMIT, ()):
        try:
            await fn(*args)
        except Exception:
            logger.exception(
                "After-commit callback %s failed", getattr(fn, "__name__", fn)
            )


async def get_async_session() -> AsyncGenerator[AsyncSession | None, None]:
    # None in in-memory mode; the repo dependencies pick their backend from it
    if async_session_factory is None:
        yield None
        return
    async with session_scope() as session:
        yield session


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("DATABASE_URL not set, storage=memory")
        yield
        return

    logger.info("Connecting to %s", engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool closed")

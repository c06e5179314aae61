"""Async engine and session helpers.

Join and delete hold a row lock on the workshop session for the whole transaction, so
each request keeps its connection until commit; size the pool for concurrent joins.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Build the shared asyncpg engine from database settings."""
    database = get_settings().database
    return create_async_engine(
        database.url,
        pool_pre_ping=True,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout_seconds,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


@asynccontextmanager
async def open_db_session() -> AsyncIterator[AsyncSession]:
    """Open a session outside the request cycle, e.g. for audit writes or the CLI sweep."""
    async with get_session_factory()() as session:
        yield session


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with open_db_session() as session:
        yield session


async def dispose_engine() -> None:
    await get_engine().dispose()

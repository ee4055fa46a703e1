"""
Async database connection management.

Exposes:
- engine / AsyncSessionLocal: primary (read-write) database
- read_engine / ReadSessionLocal: optional read replica for lock-free reads
- get_async_session(): async context manager yielding a primary session
- get_read_session(): async context manager yielding a replica session

Slot listing may read from the replica: staleness can only surface a slot
that was just consumed, and the allocation path re-validates on the primary.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shared.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_size=settings.DATABASE_POOL_SIZE,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

if settings.READ_DATABASE_URL:
    read_engine = create_async_engine(
        settings.READ_DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        pool_pre_ping=True,
    )
    ReadSessionLocal = async_sessionmaker(
        read_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    read_engine = engine
    ReadSessionLocal = AsyncSessionLocal


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Yield a session bound to the primary database.

    The session is closed on exit; uncommitted work is rolled back.
    Callers commit explicitly.
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_read_session() -> AsyncIterator[AsyncSession]:
    """Yield a session bound to the read replica (or the primary when none is configured)."""
    async with ReadSessionLocal() as session:
        yield session

"""
Database Connection Module
Handles the PostgreSQL connection holding the print queue, using the
SQLAlchemy async engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from kitchen_print.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def create_engine_for(url: str, *, pooled: bool = True, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for the given URL.

    Engines are bound to the event loop they first connect on; runtimes that
    spin up a fresh loop per run (Celery tasks, scripts) use ``pooled=False``.
    """
    if not pooled:
        return create_async_engine(url, echo=echo, poolclass=NullPool)
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects remain accessible after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = create_engine_for(settings.database_url, echo=settings.database_echo)
async_session_maker = create_session_maker(engine)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Routes hand the factory to the queue repository, which opens one
    short transaction per queue operation.
    """
    return async_session_maker


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register models on the metadata
    from kitchen_print import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created successfully!")


@asynccontextmanager
async def standalone_session_maker(url: str | None = None) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Session factory backed by a private, unpooled engine.

    Used by Celery tasks and scripts, which run their own event loop and
    must not share pooled connections with the API process.
    """
    own_engine = create_engine_for(url or settings.database_url, pooled=False)
    try:
        yield create_session_maker(own_engine)
    finally:
        await own_engine.dispose()

"""
Database Connection Module
Handles the relational store through SQLAlchemy: an async engine for the API
and a lazily-built sync engine for the Celery worker.
"""

import logging
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from restaurant_booking.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    # SQLite has no connection pool sizing knobs
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_options(settings.database_url),
)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register models on Base.metadata
    import restaurant_booking.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


@lru_cache()
def get_sync_session_maker() -> sessionmaker[Session]:
    """
    Session factory for code that runs outside the event loop (Celery tasks).

    Built on first use so the API process never opens a sync pool.
    """
    url = settings.worker_database_url
    sync_engine = create_engine(url, echo=settings.database_echo, **_engine_options(url))
    return sessionmaker(bind=sync_engine, expire_on_commit=False)

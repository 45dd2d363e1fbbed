"""
Database Connection Module
Handles the database connection using the SQLAlchemy async engine.
PostgreSQL (psycopg) in deployments, SQLite (aiosqlite) for local runs and tests.
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from order_management.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(url: str = settings.database_url) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    Pool sizing only applies to server databases; SQLite picks its own pool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo)
    return create_async_engine(
        url,
        echo=settings.database_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine()

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


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Register the mappers on Base.metadata
    import order_management.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")

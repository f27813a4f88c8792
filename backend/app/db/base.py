"""
Database Base Configuration

Sets up the async SQLAlchemy engine and session management. PostgreSQL
(asyncpg) in production; any async URL in DATABASE_URL works, e.g.
sqlite+aiosqlite for local runs. The progress tables are registered on
Base.metadata when this module loads.

Usage:
    from app.db.base import async_session_maker, Base

    # In a route
    async with async_session_maker() as session:
        result = await session.execute(...)
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings, yaml_config


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options from yaml config; SQLite ignores connection pooling."""
    if url.startswith("sqlite"):
        return {}

    db_config: dict[str, Any] = yaml_config.get("database", {})
    return {
        "pool_size": db_config.get("pool_size", 5),
        "max_overflow": db_config.get("max_overflow", 10),
        "pool_timeout": db_config.get("pool_timeout", 30),
        "pool_pre_ping": db_config.get("pool_pre_ping", True),
    }


# Create async engine
engine = create_async_engine(
    settings.DATABASE_DSN,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_DSN),
)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Import models AFTER Base is defined to avoid circular imports.
from app.db import models_progress  # noqa: F401, E402


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions in FastAPI routes.

    The progress repository commits inside its own transaction; this only
    rolls back whatever is left open when the request fails.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Initialize database tables.

    Called on application startup to create tables that don't exist.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

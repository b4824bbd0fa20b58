"""Database engine for the local appointment store."""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from scheduling_service.config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[AsyncEngine] = None


def get_database_url() -> str:
    """Get the database URL, converting to async format if needed."""
    settings = get_settings()
    db_url = settings.database.url

    # Convert postgresql:// to postgresql+asyncpg:// for async operations
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("postgresql+psycopg2://"):
        db_url = db_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    elif db_url.startswith("sqlite://") and not db_url.startswith("sqlite+aiosqlite://"):
        db_url = db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    return db_url


def create_engine() -> AsyncEngine:
    """Create and configure the SQLAlchemy async engine."""
    settings = get_settings()
    db_url = get_database_url()

    engine_kwargs: Dict[str, Any] = {"echo": settings.database.echo}

    # SQLite has no server-side pool to size
    if not settings.database.is_sqlite:
        engine_kwargs.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_pre_ping=True,
        )

    engine = create_async_engine(db_url, **engine_kwargs)

    logger.info(
        f"Database engine created: driver={engine.dialect.driver}, "
        f"pool_size={engine_kwargs.get('pool_size', 'n/a')}"
    )

    return engine


def get_engine() -> AsyncEngine:
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


async def close_engine() -> None:
    """Close the database engine and dispose of all connections."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine closed")


async def check_connection() -> bool:
    """Check if database connection is available."""
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.fetchone()
            return row is not None and row[0] == 1
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False

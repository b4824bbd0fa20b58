"""SQLAlchemy async session management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling_service.config import get_settings
from scheduling_service.database.connection import check_connection, close_engine, get_engine
from scheduling_service.database.models import Base

logger = logging.getLogger(__name__)

# Global session factory
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Session factory created")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for getting a database session.

    The session is committed when the request handler returns and rolled back
    when it raises.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of FastAPI dependencies.

    Usage:
        async with get_session_context() as session:
            service = SchedulingService(session, ...)
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verify connectivity and, for SQLite, create the schema.

    PostgreSQL schemas are managed by alembic migrations.
    """
    settings = get_settings()
    if settings.database.is_sqlite:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite schema created")

    if await check_connection():
        logger.info("Database connection initialized successfully")
    else:
        logger.warning("Database connection check failed")


async def close_db() -> None:
    """Close database connections."""
    global _session_factory
    _session_factory = None
    await close_engine()
    logger.info("Database connections closed")

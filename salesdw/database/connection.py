"""
Database Connection Management

Async database engine and session management with SQLAlchemy 2.0.
Provides the unit-of-work boundary used by batch loading and aggregate refresh.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from salesdw.config import get_settings
from salesdw.database.models import Base
from salesdw.exceptions import StorageUnavailable

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used for every unit of work"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(url: Optional[str] = None, create_schema: bool = False) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Database URL, defaults to the configured one
        create_schema: Create missing warehouse tables

    Returns:
        AsyncEngine: The initialized database engine

    Raises:
        StorageUnavailable: If the database cannot be reached
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    database_url = url or settings.database.async_url

    # asyncpg pools connections itself
    engine = create_async_engine(
        database_url,
        echo=settings.database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_schema:
                await conn.run_sync(Base.metadata.create_all)
    except (OperationalError, InterfaceError, OSError) as e:
        await engine.dispose()
        logger.error("Failed to connect to database", error=str(e))
        raise StorageUnavailable(f"Cannot connect to warehouse database: {e}") from e

    _engine = engine
    _async_session_factory = create_session_factory(engine)
    logger.info(
        "Database connection established",
        dialect=engine.dialect.name,
        schema_created=create_schema,
    )
    return _engine


async def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection pool closed")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the global session factory.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _async_session_factory


@asynccontextmanager
async def unit_of_work(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Atomic unit of work.

    Everything executed on the yielded session commits together when the block
    exits normally and is rolled back when it raises. Driver connectivity
    errors are re-raised as StorageUnavailable.

    Example:
        async with unit_of_work() as session:
            await session.execute(stmt)
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        await session.commit()
        logger.debug("Unit of work committed")
    except (OperationalError, InterfaceError) as e:
        logger.error("Storage error, rolling back", error=str(e), error_type=type(e).__name__)
        await _safe_rollback(session)
        raise StorageUnavailable(str(e)) from e
    except BaseException as e:
        logger.debug("Unit of work rolling back", error_type=type(e).__name__)
        await _safe_rollback(session)
        raise
    finally:
        await session.close()


async def _safe_rollback(session: AsyncSession) -> None:
    """Roll back, tolerating a connection that is already gone."""
    try:
        await session.rollback()
    except (OperationalError, InterfaceError) as e:
        logger.warning("Rollback failed on a broken connection", error=str(e))


async def create_schema(engine: AsyncEngine) -> None:
    """Create all warehouse tables that do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""
Database engine and session management.

Provides the async SQLAlchemy engine, the session factory, and session_scope,
the unit of work every service call runs inside.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardstore.config import settings
from cardstore.models.db import Base
from cardstore.models.failure import StorageError

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Run one logical operation in a single transaction.

    Commits when the block exits normally and rolls back on any exception.
    Business errors propagate unchanged. SQLAlchemy errors are logged here
    and re-raised as an opaque StorageError.

    Usage:
        async with session_scope() as session:
            order = await create_order(session, user_id, request)
    """
    async with (factory or async_session_factory)() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(
                "STORAGE_FAILURE",
                exc_info=True,
                extra={"error_type": type(e).__name__},
            )
            raise StorageError(operation=type(e).__name__) from e
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models.
    Should be called once at application startup.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(bind: AsyncEngine | None = None) -> None:
    """
    Drop all database tables.

    WARNING: Destroys all data. Use only for testing.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

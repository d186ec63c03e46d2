"""
Async Database Session Management

Handles SQLAlchemy async session lifecycle and dependency injection.

Sessions may be bound to a tenant: the (client, company) pair is written to
transaction-local settings read by the row-level security policies of the
bookings table (see ``sql/schema.sql``).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinic_api.config import settings
from clinic_api.models.schemas import TenantScope

logger = logging.getLogger(__name__)


# Global engine instance
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Configures connection pooling with settings from config.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    global _engine

    if _engine is None:
        _engine = create_async_engine(
            settings.database_url_str,
            echo=settings.db_echo,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
        logger.info("Database engine created successfully")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session factory.

    Returns:
        async_sessionmaker: Session factory for creating new sessions
    """
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info("Session factory created successfully")

    return _async_session_factory


_TENANT_SQL = text(
    "SELECT set_config('app.client_id', :client_id, true), "
    "set_config('app.company_id', :company_id, true)"
)


def bind_tenant(session: AsyncSession, tenant: TenantScope) -> None:
    """
    Expose the tenant to row-level security for every transaction of ``session``.

    ``set_config(..., true)`` is transaction-local, so it is re-applied each
    time the session begins a transaction (the booking service commits more
    than once per request).
    """
    params = {"client_id": str(tenant.client_id), "company_id": str(tenant.company_id)}

    @event.listens_for(session.sync_session, "after_begin")
    def _set_tenant(sync_session, transaction, connection):
        connection.execute(_TENANT_SQL, params)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    The booking service commits its own transactions; anything left open
    when the request ends is rolled back.

    Yields:
        AsyncSession: Database session for the request

    Example:
        @router.get("/bookings")
        async def list_bookings(db: AsyncSession = Depends(get_db_session)):
            result = await db.execute(text("SELECT * FROM bookings"))
            return result.fetchall()
    """
    session = get_session_factory()()

    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Database error occurred: {e}")
        raise
    finally:
        await session.rollback()
        await session.close()


@asynccontextmanager
async def get_db_context(
    tenant: Optional[TenantScope] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Use this for scripts, maintenance tasks, or testing against a real
    database.

    Args:
        tenant: Optional tenant applied to row-level security

    Yields:
        AsyncSession: Database session

    Example:
        async with get_db_context(TenantScope(client_id=2, company_id=2)) as db:
            result = await db.execute(text("SELECT count(*) FROM bookings"))
    """
    session = get_session_factory()()

    try:
        if tenant is not None:
            bind_tenant(session, tenant)
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(f"Error in database context: {e}")
        raise
    finally:
        await session.close()


async def check_database_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        bool: True if connection is healthy, False otherwise
    """
    try:
        async with get_db_context() as db:
            result = await db.execute(text("SELECT 1"))
            result.scalar()
            logger.info("Database connection check successful")
            return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def close_database_connection() -> None:
    """
    Close database engine and cleanup resources.

    Should be called during application shutdown.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connections closed successfully")

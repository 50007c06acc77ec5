"""Database connection and session management.

This module provides async SQLAlchemy setup for SQLite (dev) and PostgreSQL (prod).
Uses SQLAlchemy 2.0 async patterns with contextmanager sessions.

Writers take an explicit transactional scope: ``transaction()`` yields an
``AsyncSession`` with a transaction already begun, and every helper that
stages writes receives that session rather than opening its own. Nothing
becomes visible until the scope exits cleanly.

Examples:
    >>> from tierstore.database import transaction, init_db
    >>> await init_db()  # Create tables
    >>> async with transaction() as session:
    ...     await store.put(session, "docs/index.html", "text/html", data)

Tests:
    - tests/unit/test_database.py
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tierstore.config import get_settings
from tierstore.errors import TransactionError

logger = logging.getLogger(__name__)

# Global engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create async database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine.

    Note:
        For SQLite, enables WAL mode and a busy timeout.
        For PostgreSQL, configures connection pooling.
    """
    global _engine

    if _engine is None:
        settings = get_settings()

        if settings.is_sqlite:
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=settings.DEBUG,
                connect_args={"check_same_thread": False},
            )

            @event.listens_for(_engine.sync_engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA busy_timeout=5000")
                cursor.close()

        else:
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=settings.DEBUG,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )

        logger.info(f"Database engine created: {settings.DATABASE_URL.split('@')[-1]}")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create async session factory.

    Returns:
        async_sessionmaker: Session factory for creating sessions.
    """
    global _async_session_factory

    if _async_session_factory is None:
        engine = get_engine()
        _async_session_factory = make_session_factory(engine)

    return _async_session_factory


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def get_session(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session as async context manager.

    Yields:
        AsyncSession: Database session.

    Note:
        Session is automatically committed on success, rolled back on error.
    """
    factory = factory or get_session_factory()
    session = factory()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def transaction(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open an all-or-nothing transactional scope.

    The transaction is begun before the session is yielded and committed
    when the block exits normally. Any exception raised inside the block
    rolls everything back. Database errors from beginning, running or
    committing the transaction are raised as TransactionError; anything
    else is re-raised unchanged.

    On SQLite the write lock is taken up front with ``BEGIN IMMEDIATE``,
    so writers are serialized for the whole scope rather than from their
    first write statement.

    Yields:
        AsyncSession: Session with an open transaction.
    """
    factory = factory or get_session_factory()
    session = factory()

    try:
        try:
            await session.begin()
            if session.get_bind().dialect.name == "sqlite":
                await session.execute(text("BEGIN IMMEDIATE"))
        except SQLAlchemyError as e:
            raise TransactionError(f"failed to begin transaction: {e}") from e

        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            raise TransactionError(f"transaction failed: {e}") from e
        except BaseException:
            await session.rollback()
            raise

        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise TransactionError(f"failed to commit transaction: {e}") from e
    finally:
        await session.close()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database - create all tables.

    Should be called once at application startup.
    """
    from tierstore.models import Base

    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created")


async def drop_db(engine: AsyncEngine | None = None) -> None:
    """Drop all database tables.

    Warning:
        This is destructive! Only use in testing or development.
    """
    from tierstore.models import Base

    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    logger.warning("Database tables dropped")


async def check_db_connection() -> bool:
    """Check if database is accessible.

    Returns:
        bool: True if database is healthy.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


async def close_db() -> None:
    """Close database connections.

    Should be called at shutdown.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connections closed")

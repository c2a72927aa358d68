"""
Database Session Management
===========================

Provides async database session utilities with lazy initialization.
The engine and session_maker are created on first access, not at import time.
This enables unit tests to import modules without requiring a database connection.
"""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

# Lazy-initialized globals
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None

# Database configuration holder
_db_config: dict = {}


def configure_database(database_url: str, pool_size: int = 5, max_overflow: int = 10) -> None:
    """Configure database connection parameters. Called by API layer on startup."""
    global _db_config
    _db_config = {
        "database_url": database_url,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
    }


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    """
    Get the async database engine, creating it on first access.

    Returns:
        AsyncEngine: The SQLAlchemy async engine.
    """
    global _engine
    if _engine is None:
        if not _db_config:
            raise RuntimeError("Database not configured. Call configure_database() first.")

        database_url = _db_config["database_url"]
        if _is_sqlite(database_url):
            # SQLite uses a file lock, not a server-side pool
            db_path = make_url(database_url).database
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            _engine = create_async_engine(database_url, echo=False)
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            _engine = create_async_engine(
                database_url,
                echo=False,
                pool_pre_ping=True,
                pool_size=_db_config.get("pool_size", 5),
                max_overflow=_db_config.get("max_overflow", 10),
            )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Get the async session maker, creating it on first access.

    Returns:
        async_sessionmaker: Factory for creating database sessions.
    """
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_maker


async def create_schema() -> None:
    """Create any missing tables. Alembic owns the schema in production."""
    from notesplit.core.database.base import Base
    import notesplit.core.documents.domain  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


async def close_database() -> None:
    """
    Dispose the engine and reset globals.
    Should be called on application shutdown.
    """
    global _engine, _async_session_maker
    try:
        if _engine:
            await _engine.dispose()
    finally:
        _engine = None
        _async_session_maker = None

"""SQLAlchemy 2.0 async database engine and session management.

The engine is created lazily so the in-memory config store (and tests) never
open a MySQL connection. Forces utf8mb4 charset on MySQL tables.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cinegen.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Declarative base; MySQL tables default to utf8mb4 so Chinese prompts and emoji survive."""

    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, creating it on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = make_url(settings.DATABASE_URL)
        kwargs: dict = {"echo": settings.DEBUG}
        if url.get_backend_name() == "mysql":
            kwargs.update(
                pool_recycle=3600,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20,
                connect_args={"connect_timeout": 30},
            )
        _engine = create_async_engine(url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db() -> None:
    """Create the database (if missing) and all tables defined by Base metadata.

    Called once at application startup when the SQL config store is active.
    """
    import cinegen.models  # noqa: F401  registers tables with Base.metadata

    settings = get_settings()
    url = make_url(settings.DATABASE_URL)

    # Step 1: Ensure the MySQL database exists
    if url.get_backend_name() == "mysql" and url.database:
        admin_engine = create_async_engine(
            url.set(database=None), echo=False,
            connect_args={"connect_timeout": 30},
        )
        try:
            async with admin_engine.begin() as conn:
                await conn.execute(text(
                    f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
                    f"CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                ))
        except Exception as e:
            logger.warning("Could not create database (may already exist): %s", e)
        finally:
            await admin_engine.dispose()

    # Step 2: Create all tables
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine connection pool.

    Called at application shutdown.
    """
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None

"""Async SQLAlchemy access for the users table and the SQL schedule backend.

The engine is created lazily from ``DATABASE_URL`` and shared by the whole
process. Tests point ``DATABASE_URL`` at a temporary SQLite file and call
``dispose_engine`` before their event loop closes.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..domain.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_URL = "postgresql+asyncpg://studio_user:change_me@db:5432/studio_bot"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
# Set once every mapped table is known to exist on the current engine
_schema_ready: bool = False


def database_url() -> str:
    return os.getenv(DATABASE_URL_ENV, "").strip() or DEFAULT_URL


def _prepare_sqlite_dir(url: str) -> None:
    """SQLite will not create the folder of its database file."""
    try:
        parsed = make_url(url)
    except SQLAlchemyError:  # unparsable URL: let create_async_engine report it
        return
    if parsed.get_backend_name() != "sqlite" or not parsed.database or parsed.database == ":memory:":
        return
    folder = os.path.dirname(os.path.abspath(parsed.database))
    os.makedirs(folder, exist_ok=True)


def _make_engine(url: str) -> AsyncEngine:
    _prepare_sqlite_dir(url)
    return create_async_engine(url, echo=False, pool_pre_ping=not url.startswith("sqlite"))


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        _engine = _make_engine(database_url())
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


def _missing_tables(sync_conn) -> list[str]:
    existing = set(inspect(sync_conn).get_table_names())
    return [name for name in Base.metadata.tables if name not in existing]


async def ensure_schema() -> None:
    """Create any mapped table the database does not have yet."""
    global _schema_ready
    if _schema_ready:
        return
    async with get_engine().connect() as conn:
        missing = await conn.run_sync(_missing_tables)
    if missing:
        logger.info("Creating missing tables: %s", ", ".join(missing))
        await init_db()
    _schema_ready = True


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    await ensure_schema()
    async with get_session_factory()() as session:
        yield session


async def init_db(force: bool = False) -> None:
    """Create the schema; ``force`` drops every mapped table first."""
    global _schema_ready
    async with get_engine().begin() as conn:
        if force:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    _schema_ready = True


async def dispose_engine() -> None:
    """Close pooled connections (shutdown / end of a test event loop)."""
    engine = _engine
    _reset_engine_for_tests()
    if engine is not None:
        try:
            await engine.dispose()
        except SQLAlchemyError as e:
            logger.warning("Engine dispose failed: %s", e)


def _reset_engine_for_tests() -> None:
    global _engine, _session_factory, _schema_ready
    _engine = None
    _session_factory = None
    _schema_ready = False


__all__ = [
    "database_url",
    "get_engine",
    "get_session_factory",
    "get_session",
    "ensure_schema",
    "init_db",
    "dispose_engine",
]

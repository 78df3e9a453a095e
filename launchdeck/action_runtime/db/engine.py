"""Async SQLAlchemy engine and session factory.

SQLite through aiosqlite is the default store.  Every SQLite connection has
foreign keys switched on so that deleting a workspace cascades to its
actions, variables, and runs, and uses WAL journaling so concurrent launch
tasks can read while another one writes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from launchdeck.action_runtime.db.tables import Base


def _configure_sqlite_connection(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(database_url: str, **kwargs: object) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    For SQLite the parent directory of the database file is created if
    needed.  Other backends get pool defaults suited to a small local
    service (``pool_pre_ping``, hourly recycle).  All defaults can be
    overridden via *kwargs*.
    """
    url = make_url(database_url)
    defaults: dict[str, object] = {"echo": False}

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    else:
        defaults.update({"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True, "pool_recycle": 3600})

    defaults.update(kwargs)
    engine = create_async_engine(database_url, **defaults)  # type: ignore[arg-type]

    if url.get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*.

    ``expire_on_commit=False`` so that ORM instances remain usable after
    commit without triggering lazy loads (implicit IO is forbidden in async
    code).
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet.  Idempotent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Shared test fixtures: a file-backed SQLite database per test.

Each test gets its own database file under ``tmp_path`` with all tables
created, so tests are isolated without savepoint tricks and concurrent
launch tasks can use real, separate sessions.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from launchdeck.action_runtime.db.engine import create_engine, create_session_factory, init_db
from launchdeck.action_runtime.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'launchdeck.db'}"
    _set_env("LAUNCHDECK_DATABASE_URL", url)
    return url


@pytest.fixture
async def async_engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    """Engine with all tables created."""
    engine = create_engine(database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(async_engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Async SQLAlchemy session for arranging and asserting test data."""
    async with session_factory() as session:
        yield session

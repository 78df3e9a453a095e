"""Service configuration loaded from LAUNCHDECK_* environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class LaunchdeckSettings(BaseSettings):
    """Launchdeck action runtime settings.

    All fields are read from environment variables with the ``LAUNCHDECK_``
    prefix.  For example, ``LAUNCHDECK_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    User-facing preferences (default shell per OS, external IDE path, log
    retention) are **not** managed here -- they live in the ``settings``
    table and are read through ``managers.settings``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LAUNCHDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_file: str | None = None
    """Also write the service log here, rotated daily and kept for a week."""

    # -- Infrastructure --------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./data/launchdeck.db"
    """Async SQLAlchemy URL.  SQLite (aiosqlite) by default."""

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 8765
    graceful_shutdown_timeout: int = 30
    """Seconds to wait for live runs to finish during shutdown.

    After this timeout, remaining runs are cancelled.
    """

    # -- Execution -------------------------------------------------------------
    cancel_grace_seconds: float = 5.0
    """Seconds between SIGTERM and SIGKILL when cancelling a process."""

    log_queue_size: int = 1000
    """Bound on captured output lines waiting to be forwarded per run."""

    log_flush_lines: int = 50
    """Captured lines are persisted in batches of at most this size."""

    max_log_lines_per_run: int = 10_000
    """Lines beyond this count are still emitted but no longer persisted."""

    auto_launch_on_startup: bool = True
    """Launch the actions flagged ``auto_launch`` when the server starts."""

    # -- Retention -------------------------------------------------------------
    retention_sweep_interval: int = 3600
    """Seconds between retention sweeps.  ``0`` disables the sweeper."""


def get_settings() -> LaunchdeckSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> LaunchdeckSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return LaunchdeckSettings()


# Apply lru_cache at runtime so the function is only called once.
from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)

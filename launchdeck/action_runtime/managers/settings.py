"""User preference storage (``settings`` table).

Every key has a documented default, returned when no row exists.  The
launch path only reads preferences; writes come from the API / CLI.
"""

from __future__ import annotations

import sys

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Setting

DEFAULT_SETTINGS: dict[str, str] = {
    "default_shell_windows": "powershell.exe",
    "default_shell_macos": "zsh",
    "default_shell_linux": "bash",
    "external_ide_path": "",
    "log_retention_days": "30",
}


class UnknownSettingError(LookupError):
    """Raised when a key has no row and no documented default."""


class LaunchPreferences(BaseModel):
    """The subset of preferences consumed by expansion and retention."""

    default_shell: str = DEFAULT_SETTINGS["default_shell_linux"]
    external_ide_path: str = ""
    log_retention_days: int = 30


def platform_name(platform: str | None = None) -> str:
    """``windows``, ``macos`` or ``linux`` for a ``sys.platform`` value (the current one by default)."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "windows"
    if platform == "darwin":
        return "macos"
    return "linux"


def shell_setting_key(platform: str | None = None) -> str:
    return f"default_shell_{platform_name(platform)}"


async def get_setting(db: AsyncSession, key: str) -> str:
    """Return the stored value, or the documented default."""
    row = await db.get(Setting, key)
    if row is not None:
        return row.value
    if key in DEFAULT_SETTINGS:
        return DEFAULT_SETTINGS[key]
    raise UnknownSettingError(key)


async def set_setting(db: AsyncSession, key: str, value: str) -> Setting:
    row = await db.get(Setting, key)
    if row is None:
        row = Setting(key=key, value=value)
        db.add(row)
    else:
        row.value = value
    await db.commit()
    await db.refresh(row)
    return row


async def list_settings(db: AsyncSession) -> dict[str, tuple[str, bool]]:
    """Return ``key -> (value, is_default)`` for stored keys and all defaults."""
    result = await db.execute(select(Setting).order_by(Setting.key))
    merged = {key: (value, True) for key, value in DEFAULT_SETTINGS.items()}
    for row in result.scalars().all():
        merged[row.key] = (row.value, False)
    return dict(sorted(merged.items()))


async def load_launch_preferences(db: AsyncSession, platform: str | None = None) -> LaunchPreferences:
    retention_raw = await get_setting(db, "log_retention_days")
    try:
        retention = int(retention_raw)
    except ValueError:
        retention = int(DEFAULT_SETTINGS["log_retention_days"])
    return LaunchPreferences(
        default_shell=await get_setting(db, shell_setting_key(platform)),
        external_ide_path=await get_setting(db, "external_ide_path"),
        log_retention_days=retention,
    )

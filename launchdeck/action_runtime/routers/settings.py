"""User preference endpoints (RPC-style).

Every documented key always has a value; unknown keys can be stored but
never fall back to a default.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from launchdeck.action_runtime.deps import DbSession
from launchdeck.action_runtime.managers import settings as settings_manager
from launchdeck.action_runtime.models.api import SettingResponse, SettingUpdate

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/list", response_model=list[SettingResponse])
async def list_settings(db: DbSession) -> list[SettingResponse]:
    merged = await settings_manager.list_settings(db)
    return [SettingResponse(key=key, value=value, is_default=is_default) for key, (value, is_default) in merged.items()]


@router.get("/{key}/get", response_model=SettingResponse)
async def get_setting(key: str, db: DbSession) -> SettingResponse:
    merged = await settings_manager.list_settings(db)
    if key not in merged:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Setting '{key}' not found.")
    value, is_default = merged[key]
    return SettingResponse(key=key, value=value, is_default=is_default)


@router.post("/{key}/set", response_model=SettingResponse)
async def set_setting(key: str, body: SettingUpdate, db: DbSession) -> SettingResponse:
    if key == "log_retention_days" and not body.value.strip().isdigit():
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="log_retention_days must be a whole number.")
    row = await settings_manager.set_setting(db, key, body.value)
    return SettingResponse(key=row.key, value=row.value, is_default=False)

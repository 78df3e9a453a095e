"""API request / response schemas for CRUD endpoints.

- **Create** schemas validate user input and provide defaults.
- **Update** schemas allow partial updates via ``exclude_unset``.
- **Response** schemas serialize ORM rows via ``from_attributes``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from launchdeck.action_runtime.models.enums import ActionType, LogLevel, RunStatus, ToolVariant, VariableScope

Platform = Literal["windows", "macos", "linux"]

# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------


class WorkspaceCreate(BaseModel):
    name: str
    description: str | None = None
    root_path: str | None = None
    icon: str | None = None


class WorkspaceUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    root_path: str | None = None
    icon: str | None = None


class WorkspaceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    root_path: str | None = None
    icon: str | None = None
    action_ids: list[int] = Field(default_factory=list, description="Ordered by order_index.")
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------


class ToolCreate(BaseModel):
    name: str
    variant: ToolVariant
    command: str = ""
    default_args: list[str] = Field(default_factory=list)
    icon: str | None = None
    description: str | None = None
    enabled: bool = True


class ToolUpdate(BaseModel):
    name: str | None = None
    variant: ToolVariant | None = None
    command: str | None = None
    default_args: list[str] | None = None
    icon: str | None = None
    description: str | None = None
    enabled: bool | None = None


class ToolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    variant: ToolVariant
    command: str
    default_args: list[str]
    icon: str | None = None
    description: str | None = None
    enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Action
# ---------------------------------------------------------------------------


class ActionCreate(BaseModel):
    workspace_id: int
    name: str
    action_type: ActionType
    tool_id: int | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    detached: bool = False
    track_process: bool = Field(default=True, description="Detached processes: wait for their exit code.")
    timeout_seconds: int | None = Field(default=None, gt=0)
    auto_launch: bool = Field(default=False, description="Launched (detached) when the server starts.")
    os_overrides: dict[Platform, dict[str, Any]] | None = Field(
        default=None,
        description="Per-platform config overrides keyed by windows, macos or linux.",
    )
    order_index: int | None = Field(default=None, description="Appended at the end if omitted.")


class ActionUpdate(BaseModel):
    """Partial update.  ``workspace_id`` is deliberately absent: it never changes."""

    name: str | None = None
    action_type: ActionType | None = None
    tool_id: int | None = None
    config: dict[str, Any] | None = None
    detached: bool | None = None
    track_process: bool | None = None
    timeout_seconds: int | None = Field(default=None, gt=0)
    auto_launch: bool | None = None
    os_overrides: dict[Platform, dict[str, Any]] | None = None
    order_index: int | None = None


class ActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int
    name: str
    action_type: ActionType
    tool_id: int | None = None
    config: dict[str, Any]
    detached: bool
    track_process: bool
    timeout_seconds: int | None = None
    auto_launch: bool
    os_overrides: dict[Platform, dict[str, Any]] | None = None
    order_index: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Variable
# ---------------------------------------------------------------------------


class VariableCreate(BaseModel):
    scope: VariableScope
    workspace_id: int | None = Field(default=None, description="Required for workspace scope, forbidden for global.")
    key: str = Field(min_length=1)
    value: str = ""
    enabled: bool = True


class VariableUpdate(BaseModel):
    key: str | None = Field(default=None, min_length=1)
    value: str | None = None
    enabled: bool | None = None


class VariableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    scope: VariableScope
    workspace_id: int | None = None
    key: str
    value: str
    enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Setting
# ---------------------------------------------------------------------------


class SettingUpdate(BaseModel):
    value: str


class SettingResponse(BaseModel):
    key: str
    value: str
    is_default: bool = False


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


class RunLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seq: int
    level: LogLevel
    message: str
    created_at: datetime | None = None


class RunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int
    action_id: int
    status: RunStatus
    process_id: int | None = None
    started_at: datetime
    ended_at: datetime | None = None
    exit_code: int | None = None
    error_message: str | None = None
    logs: list[RunLogResponse] | None = None


class ActiveRunResponse(BaseModel):
    run_id: int
    workspace_id: int
    action_id: int
    process_id: int | None = None
    cancel_requested: bool = False


class CancelResponse(BaseModel):
    run_id: int
    cancelled: bool
    message: str


class PruneResponse(BaseModel):
    deleted: int
    retention_days: int

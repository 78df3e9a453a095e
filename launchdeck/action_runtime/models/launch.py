"""Launch request / result models.

These are the in-process boundary between callers (HTTP routes, CLI) and
the launch coordinator.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from launchdeck.action_runtime.models.enums import ActionType


class LaunchActionRequest(BaseModel):
    """One action to launch, carrying its own (unresolved) configuration."""

    action_id: int
    action_type: ActionType
    config: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, str] = Field(
        default_factory=dict,
        description="Action-level variable overrides (win over workspace and global scopes).",
    )
    timeout_seconds: float | None = Field(default=None, gt=0, description="Stop and fail the run after this long.")


class LaunchWorkspaceRequest(BaseModel):
    workspace_id: int
    actions: list[LaunchActionRequest] = Field(default_factory=list)


class LaunchResult(BaseModel):
    """Per-action outcome as seen at the "started" barrier."""

    success: bool
    message: str
    process_id: int | None = None
    run_id: int | None = None
    action_id: int | None = None


class LaunchSummary(BaseModel):
    """Aggregate outcome of a workspace launch."""

    success: bool
    message: str
    results: list[LaunchResult] = Field(default_factory=list)
    persisted: bool = True
    """False if at least one run transition could not be written to the store."""


class LaunchSavedWorkspaceRequest(BaseModel):
    """Launch a workspace's stored actions."""

    action_ids: list[int] | None = Field(default=None, description="Subset to launch; all actions when omitted.")
    variables: dict[str, str] = Field(
        default_factory=dict,
        description="Overrides applied to every launched action.",
    )

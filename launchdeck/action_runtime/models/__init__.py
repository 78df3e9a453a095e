"""Data models for the action runtime."""

from launchdeck.action_runtime.models.api import (
    ActionCreate,
    ActionResponse,
    ActionUpdate,
    RunResponse,
    ToolCreate,
    ToolResponse,
    ToolUpdate,
    VariableCreate,
    VariableResponse,
    VariableUpdate,
    WorkspaceCreate,
    WorkspaceResponse,
    WorkspaceUpdate,
)
from launchdeck.action_runtime.models.enums import (
    ActionType,
    EventType,
    LogLevel,
    RunStatus,
    ToolVariant,
    VariableScope,
)
from launchdeck.action_runtime.models.events import (
    ActionCompletedEvent,
    ActionEvent,
    ActionLogEvent,
    ActionStartedEvent,
)
from launchdeck.action_runtime.models.launch import (
    LaunchActionRequest,
    LaunchResult,
    LaunchSavedWorkspaceRequest,
    LaunchSummary,
    LaunchWorkspaceRequest,
)

__all__ = [
    "ActionCompletedEvent",
    "ActionCreate",
    "ActionEvent",
    "ActionLogEvent",
    "ActionResponse",
    "ActionStartedEvent",
    "ActionType",
    "ActionUpdate",
    "EventType",
    "LaunchActionRequest",
    "LaunchResult",
    "LaunchSavedWorkspaceRequest",
    "LaunchSummary",
    "LaunchWorkspaceRequest",
    "LogLevel",
    "RunResponse",
    "RunStatus",
    "ToolCreate",
    "ToolResponse",
    "ToolUpdate",
    "ToolVariant",
    "VariableCreate",
    "VariableResponse",
    "VariableScope",
    "VariableUpdate",
    "WorkspaceCreate",
    "WorkspaceResponse",
    "WorkspaceUpdate",
]

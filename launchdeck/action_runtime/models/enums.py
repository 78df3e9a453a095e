"""Shared enumerations used across the action runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Run ---------------------------------------------------------------------


class RunStatus(StrEnum):
    """Durable run status persisted in the ``runs`` table."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED})


class LogLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


# -- Actions and tools ---------------------------------------------------------


class ActionType(StrEnum):
    TOOL = "tool"
    COMMAND = "command"
    URL = "url"
    DELAY = "delay"


class ToolVariant(StrEnum):
    EDITOR_LAUNCH = "editor-launch"
    IDE_LAUNCH = "ide-launch"
    COMMAND = "command"
    URL = "url"


# -- Variables -----------------------------------------------------------------


class VariableScope(StrEnum):
    GLOBAL = "global"
    WORKSPACE = "workspace"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Action event kinds delivered to subscribers."""

    ACTION_STARTED = "action-started"
    ACTION_LOG = "action-log"
    ACTION_COMPLETED = "action-completed"

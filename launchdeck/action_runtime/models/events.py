"""Action event models.

One model per event kind; ``event_type`` is the discriminator used by the
SSE transport as the event name.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from launchdeck.action_runtime.models.enums import EventType, LogLevel


def _now() -> datetime:
    return datetime.now(UTC)


class _ActionEventBase(BaseModel):
    action_id: int
    workspace_id: int
    run_id: int
    timestamp: datetime = Field(default_factory=_now)


class ActionStartedEvent(_ActionEventBase):
    event_type: Literal[EventType.ACTION_STARTED] = EventType.ACTION_STARTED
    process_id: int | None = None


class ActionLogEvent(_ActionEventBase):
    event_type: Literal[EventType.ACTION_LOG] = EventType.ACTION_LOG
    level: LogLevel
    message: str


class ActionCompletedEvent(_ActionEventBase):
    event_type: Literal[EventType.ACTION_COMPLETED] = EventType.ACTION_COMPLETED
    exit_code: int | None = None
    success: bool


ActionEvent = Annotated[
    ActionStartedEvent | ActionLogEvent | ActionCompletedEvent,
    Field(discriminator="event_type"),
]

"""Server-sent event stream of action events.

Subscribers only receive events published after they connect (no
replay).  Use ``/api/runs`` to catch up on earlier state.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from launchdeck.action_runtime.deps import Emitter
from launchdeck.action_runtime.events import Subscription

router = APIRouter(prefix="/events", tags=["events"])


async def event_stream(
    subscription: Subscription,
    *,
    workspace_id: int | None = None,
    run_id: int | None = None,
) -> AsyncIterator[dict[str, str]]:
    """Map subscribed events to SSE messages; the subscription closes with the stream."""
    async with subscription:
        async for event in subscription:
            if workspace_id is not None and event.workspace_id != workspace_id:
                continue
            if run_id is not None and event.run_id != run_id:
                continue
            yield {"event": str(event.event_type), "data": event.model_dump_json()}


@router.get("/stream")
async def stream_events(
    emitter: Emitter,
    workspace_id: int | None = Query(None, description="Only events of this workspace."),
    run_id: int | None = Query(None, description="Only events of this run."),
) -> EventSourceResponse:
    # Subscribe before the response starts so nothing published in between is missed.
    subscription = emitter.subscribe()
    return EventSourceResponse(event_stream(subscription, workspace_id=workspace_id, run_id=run_id), ping=15)

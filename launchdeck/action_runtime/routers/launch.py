"""Launch endpoints.

Both endpoints return once every launched run has left ``pending``; the
runs themselves continue in the background.  Follow them through
``/api/events/stream`` or ``/api/runs``.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from launchdeck.action_runtime.deps import Coordinator
from launchdeck.action_runtime.managers.actions import ActionNotFoundError
from launchdeck.action_runtime.managers.workspaces import WorkspaceNotFoundError
from launchdeck.action_runtime.models.launch import LaunchSavedWorkspaceRequest, LaunchSummary, LaunchWorkspaceRequest
from launchdeck.action_runtime.registry import ShuttingDownError

router = APIRouter(prefix="/launch", tags=["launch"])


@router.post("/workspace", response_model=LaunchSummary)
async def launch_workspace(
    body: LaunchWorkspaceRequest,
    coordinator: Coordinator,
    sequential: bool = Query(False, description="Start each action after the previous one has finished."),
) -> LaunchSummary:
    """Launch an explicit list of actions (configuration supplied by the caller)."""
    try:
        return await coordinator.launch_workspace(body, sequential=sequential)
    except ShuttingDownError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from None
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {body.workspace_id} not found.") from None


@router.post("/workspaces/{workspace_id}", response_model=LaunchSummary)
async def launch_saved_workspace(
    workspace_id: int,
    coordinator: Coordinator,
    body: LaunchSavedWorkspaceRequest | None = None,
    sequential: bool = Query(False, description="Start each action after the previous one has finished."),
) -> LaunchSummary:
    """Launch a workspace's stored actions in launch order."""
    body = body or LaunchSavedWorkspaceRequest()
    try:
        return await coordinator.launch_saved_workspace(
            workspace_id,
            action_ids=body.action_ids,
            overrides=body.variables,
            sequential=sequential,
        )
    except ShuttingDownError as exc:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from None
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {workspace_id} not found.") from None
    except ActionNotFoundError as exc:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, detail=f"Action {exc.args[0]} not found in workspace {workspace_id}."
        ) from None

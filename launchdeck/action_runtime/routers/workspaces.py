"""Workspace CRUD endpoints (RPC-style).

All write operations use POST; reads use GET.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from launchdeck.action_runtime.db.tables import Workspace
from launchdeck.action_runtime.deps import DbSession
from launchdeck.action_runtime.managers import workspaces as workspace_manager
from launchdeck.action_runtime.models.api import WorkspaceCreate, WorkspaceResponse, WorkspaceUpdate

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


async def _to_response(db: DbSession, workspace: Workspace) -> WorkspaceResponse:
    response = WorkspaceResponse.model_validate(workspace)
    response.action_ids = await workspace_manager.list_action_ids(db, response.id)
    return response


@router.post("/create", response_model=WorkspaceResponse, status_code=status.HTTP_201_CREATED)
async def create_workspace(body: WorkspaceCreate, db: DbSession) -> WorkspaceResponse:
    """Create a new workspace."""
    workspace = await workspace_manager.create_workspace(db, body)
    return await _to_response(db, workspace)


@router.get("/list", response_model=list[WorkspaceResponse])
async def list_workspaces(
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[WorkspaceResponse]:
    """List workspaces, ordered by name."""
    workspaces = await workspace_manager.list_workspaces(db, limit=limit, offset=offset)
    return [await _to_response(db, workspace) for workspace in workspaces]


@router.get("/{workspace_id}/get", response_model=WorkspaceResponse)
async def get_workspace(workspace_id: int, db: DbSession) -> WorkspaceResponse:
    """Get a single workspace by ID, with its action IDs in launch order."""
    try:
        workspace = await workspace_manager.get_workspace(db, workspace_id)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {workspace_id} not found.") from None
    return await _to_response(db, workspace)


@router.post("/{workspace_id}/update", response_model=WorkspaceResponse)
async def update_workspace(workspace_id: int, body: WorkspaceUpdate, db: DbSession) -> WorkspaceResponse:
    """Partially update a workspace."""
    try:
        workspace = await workspace_manager.update_workspace(db, workspace_id, body)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {workspace_id} not found.") from None
    return await _to_response(db, workspace)


@router.post("/{workspace_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(workspace_id: int, db: DbSession) -> None:
    """Delete a workspace together with its actions, variables, and runs."""
    try:
        await workspace_manager.delete_workspace(db, workspace_id)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {workspace_id} not found.") from None

"""Action CRUD endpoints (RPC-style).

Actions are listed per workspace; ``workspace_id`` is fixed at creation.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from launchdeck.action_runtime.db.tables import Action
from launchdeck.action_runtime.deps import DbSession
from launchdeck.action_runtime.managers import actions as action_manager
from launchdeck.action_runtime.managers.actions import ActionNotFoundError, InvalidActionError
from launchdeck.action_runtime.managers.tools import ToolNotFoundError
from launchdeck.action_runtime.managers.workspaces import WorkspaceNotFoundError
from launchdeck.action_runtime.models.api import ActionCreate, ActionResponse, ActionUpdate

router = APIRouter(prefix="/actions", tags=["actions"])


@router.post("/create", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def create_action(body: ActionCreate, db: DbSession) -> Action:
    """Create an action; it is appended to the workspace's launch order by default."""
    try:
        return await action_manager.create_action(db, body)
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {body.workspace_id} not found.") from None
    except ToolNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Tool {body.tool_id} not found.") from None
    except InvalidActionError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None


@router.get("/list", response_model=list[ActionResponse])
async def list_actions(db: DbSession, workspace_id: int = Query(..., description="Owning workspace.")) -> list[Action]:
    return await action_manager.list_actions(db, workspace_id)


@router.get("/{action_id}/get", response_model=ActionResponse)
async def get_action(action_id: int, db: DbSession) -> Action:
    try:
        return await action_manager.get_action(db, action_id)
    except ActionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Action {action_id} not found.") from None


@router.post("/{action_id}/update", response_model=ActionResponse)
async def update_action(action_id: int, body: ActionUpdate, db: DbSession) -> Action:
    try:
        return await action_manager.update_action(db, action_id, body)
    except ActionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Action {action_id} not found.") from None
    except ToolNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Tool {body.tool_id} not found.") from None
    except InvalidActionError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None


@router.post("/{action_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_action(action_id: int, db: DbSession) -> None:
    try:
        await action_manager.delete_action(db, action_id)
    except ActionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Action {action_id} not found.") from None

"""Variable CRUD endpoints (RPC-style)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from launchdeck.action_runtime.db.tables import Variable
from launchdeck.action_runtime.deps import DbSession
from launchdeck.action_runtime.managers import variables as variable_manager
from launchdeck.action_runtime.managers.variables import (
    DuplicateVariableError,
    InvalidVariableScopeError,
    VariableNotFoundError,
)
from launchdeck.action_runtime.managers.workspaces import WorkspaceNotFoundError
from launchdeck.action_runtime.models.api import VariableCreate, VariableResponse, VariableUpdate
from launchdeck.action_runtime.models.enums import VariableScope

router = APIRouter(prefix="/variables", tags=["variables"])


@router.post("/create", response_model=VariableResponse, status_code=status.HTTP_201_CREATED)
async def create_variable(body: VariableCreate, db: DbSession) -> Variable:
    try:
        return await variable_manager.create_variable(db, body)
    except InvalidVariableScopeError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None
    except WorkspaceNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace {body.workspace_id} not found.") from None
    except DuplicateVariableError:
        raise HTTPException(
            status.HTTP_409_CONFLICT, detail=f"Variable '{body.key}' already exists in this scope."
        ) from None


@router.get("/list", response_model=list[VariableResponse])
async def list_variables(
    db: DbSession,
    scope: VariableScope | None = Query(None),
    workspace_id: int | None = Query(None),
) -> list[Variable]:
    return await variable_manager.list_variables(db, scope=scope, workspace_id=workspace_id)


@router.get("/{variable_id}/get", response_model=VariableResponse)
async def get_variable(variable_id: int, db: DbSession) -> Variable:
    try:
        return await variable_manager.get_variable(db, variable_id)
    except VariableNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Variable {variable_id} not found.") from None


@router.post("/{variable_id}/update", response_model=VariableResponse)
async def update_variable(variable_id: int, body: VariableUpdate, db: DbSession) -> Variable:
    try:
        return await variable_manager.update_variable(db, variable_id, body)
    except VariableNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Variable {variable_id} not found.") from None
    except DuplicateVariableError:
        raise HTTPException(
            status.HTTP_409_CONFLICT, detail=f"Variable '{body.key}' already exists in this scope."
        ) from None


@router.post("/{variable_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_variable(variable_id: int, db: DbSession) -> None:
    try:
        await variable_manager.delete_variable(db, variable_id)
    except VariableNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Variable {variable_id} not found.") from None

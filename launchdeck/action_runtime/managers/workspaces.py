"""Workspace CRUD operations.

Encapsulates all workspace data access: create, list, get, update, delete.
Deleting a workspace cascades to its actions, workspace variables, and runs.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Action, Workspace
from launchdeck.action_runtime.models.api import WorkspaceCreate, WorkspaceUpdate


class WorkspaceNotFoundError(LookupError):
    """Raised when a workspace is not found."""


async def create_workspace(db: AsyncSession, body: WorkspaceCreate) -> Workspace:
    workspace = Workspace(**body.model_dump())
    db.add(workspace)
    await db.commit()
    await db.refresh(workspace)
    return workspace


async def list_workspaces(db: AsyncSession, *, limit: int = 50, offset: int = 0) -> list[Workspace]:
    """List workspaces, ordered by name."""
    stmt = select(Workspace).order_by(Workspace.name, Workspace.id).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_workspace(db: AsyncSession, workspace_id: int) -> Workspace:
    """Get a workspace by ID.  Raises ``WorkspaceNotFoundError`` if missing."""
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise WorkspaceNotFoundError(workspace_id)
    return workspace


async def list_action_ids(db: AsyncSession, workspace_id: int) -> list[int]:
    """Return the workspace's action IDs in launch order."""
    stmt = (
        select(Action.id)
        .where(Action.workspace_id == workspace_id)
        .order_by(Action.order_index, Action.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_workspace(db: AsyncSession, workspace_id: int, body: WorkspaceUpdate) -> Workspace:
    """Partially update a workspace.  Raises ``WorkspaceNotFoundError`` if missing."""
    workspace = await get_workspace(db, workspace_id)

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return workspace

    for key, value in changes.items():
        setattr(workspace, key, value)

    await db.commit()
    await db.refresh(workspace)
    return workspace


async def delete_workspace(db: AsyncSession, workspace_id: int) -> None:
    """Delete a workspace.  Raises ``WorkspaceNotFoundError`` if missing."""
    workspace = await get_workspace(db, workspace_id)
    await db.delete(workspace)
    await db.commit()

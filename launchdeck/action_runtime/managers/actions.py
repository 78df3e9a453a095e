"""Action CRUD operations.

Actions belong to exactly one workspace for their whole life: the update
path never touches ``workspace_id``.  New actions are appended after the
workspace's last ``order_index`` unless one is given.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Action
from launchdeck.action_runtime.managers.tools import get_tool
from launchdeck.action_runtime.managers.workspaces import get_workspace
from launchdeck.action_runtime.models.api import ActionCreate, ActionUpdate
from launchdeck.action_runtime.models.enums import ActionType


class ActionNotFoundError(LookupError):
    """Raised when an action is not found."""


class InvalidActionError(ValueError):
    """Raised when an action's type and tool reference disagree."""


def _check_tool_reference(action_type: ActionType | str, tool_id: int | None) -> None:
    if ActionType(action_type) == ActionType.TOOL and tool_id is None:
        msg = "Tool actions require a tool_id"
        raise InvalidActionError(msg)


async def _next_order_index(db: AsyncSession, workspace_id: int) -> int:
    result = await db.execute(select(func.max(Action.order_index)).where(Action.workspace_id == workspace_id))
    current = result.scalar_one_or_none()
    return 0 if current is None else current + 1


async def create_action(db: AsyncSession, body: ActionCreate) -> Action:
    """Create an action.

    Raises ``WorkspaceNotFoundError`` / ``ToolNotFoundError`` for dangling
    references and ``InvalidActionError`` for a tool action without a tool.
    """
    await get_workspace(db, body.workspace_id)
    _check_tool_reference(body.action_type, body.tool_id)
    if body.tool_id is not None:
        await get_tool(db, body.tool_id)

    data = body.model_dump()
    if data["order_index"] is None:
        data["order_index"] = await _next_order_index(db, body.workspace_id)

    action = Action(**data)
    db.add(action)
    await db.commit()
    await db.refresh(action)
    return action


async def list_actions(db: AsyncSession, workspace_id: int) -> list[Action]:
    """List a workspace's actions in launch order."""
    stmt = select(Action).where(Action.workspace_id == workspace_id).order_by(Action.order_index, Action.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_auto_launch_actions(db: AsyncSession) -> list[Action]:
    """Actions flagged ``auto_launch``, grouped by workspace, each group in launch order."""
    stmt = (
        select(Action)
        .where(Action.auto_launch.is_(True))
        .order_by(Action.workspace_id, Action.order_index, Action.id)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_action(db: AsyncSession, action_id: int) -> Action:
    """Get an action by ID.  Raises ``ActionNotFoundError`` if missing."""
    action = await db.get(Action, action_id)
    if action is None:
        raise ActionNotFoundError(action_id)
    return action


async def update_action(db: AsyncSession, action_id: int, body: ActionUpdate) -> Action:
    action = await get_action(db, action_id)

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return action

    _check_tool_reference(changes.get("action_type", action.action_type), changes.get("tool_id", action.tool_id))
    if changes.get("tool_id") is not None:
        await get_tool(db, changes["tool_id"])

    for key, value in changes.items():
        setattr(action, key, value)

    await db.commit()
    await db.refresh(action)
    return action


async def delete_action(db: AsyncSession, action_id: int) -> None:
    """Delete an action and (by cascade) its run history."""
    action = await get_action(db, action_id)
    await db.delete(action)
    await db.commit()

"""Tool CRUD operations.

A tool is a reusable launch template (editor, IDE, command, or URL) that
``tool`` actions reference by ID.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Tool
from launchdeck.action_runtime.models.api import ToolCreate, ToolUpdate


class ToolNotFoundError(LookupError):
    """Raised when a tool is not found."""


async def create_tool(db: AsyncSession, body: ToolCreate) -> Tool:
    tool = Tool(**body.model_dump())
    db.add(tool)
    await db.commit()
    await db.refresh(tool)
    return tool


async def list_tools(db: AsyncSession, *, enabled_only: bool = False) -> list[Tool]:
    stmt = select(Tool).order_by(Tool.name, Tool.id)
    if enabled_only:
        stmt = stmt.where(Tool.enabled.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_tool(db: AsyncSession, tool_id: int) -> Tool:
    """Get a tool by ID.  Raises ``ToolNotFoundError`` if missing."""
    tool = await db.get(Tool, tool_id)
    if tool is None:
        raise ToolNotFoundError(tool_id)
    return tool


async def get_tools(db: AsyncSession, tool_ids: set[int]) -> dict[int, Tool]:
    """Batch lookup.  Missing IDs are simply absent from the result."""
    if not tool_ids:
        return {}
    result = await db.execute(select(Tool).where(Tool.id.in_(tool_ids)))
    return {tool.id: tool for tool in result.scalars().all()}


async def update_tool(db: AsyncSession, tool_id: int, body: ToolUpdate) -> Tool:
    tool = await get_tool(db, tool_id)

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return tool

    for key, value in changes.items():
        setattr(tool, key, value)

    await db.commit()
    await db.refresh(tool)
    return tool


async def delete_tool(db: AsyncSession, tool_id: int) -> None:
    """Delete a tool.  Actions referencing it keep existing with ``tool_id`` cleared."""
    tool = await get_tool(db, tool_id)
    await db.delete(tool)
    await db.commit()

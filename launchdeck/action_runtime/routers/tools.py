"""Tool CRUD endpoints (RPC-style)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from launchdeck.action_runtime.db.tables import Tool
from launchdeck.action_runtime.deps import DbSession
from launchdeck.action_runtime.managers import tools as tool_manager
from launchdeck.action_runtime.models.api import ToolCreate, ToolResponse, ToolUpdate

router = APIRouter(prefix="/tools", tags=["tools"])


@router.post("/create", response_model=ToolResponse, status_code=status.HTTP_201_CREATED)
async def create_tool(body: ToolCreate, db: DbSession) -> Tool:
    return await tool_manager.create_tool(db, body)


@router.get("/list", response_model=list[ToolResponse])
async def list_tools(
    db: DbSession,
    enabled_only: bool = Query(False, description="Only return enabled tools."),
) -> list[Tool]:
    return await tool_manager.list_tools(db, enabled_only=enabled_only)


@router.get("/{tool_id}/get", response_model=ToolResponse)
async def get_tool(tool_id: int, db: DbSession) -> Tool:
    try:
        return await tool_manager.get_tool(db, tool_id)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Tool {tool_id} not found.") from None


@router.post("/{tool_id}/update", response_model=ToolResponse)
async def update_tool(tool_id: int, body: ToolUpdate, db: DbSession) -> Tool:
    try:
        return await tool_manager.update_tool(db, tool_id, body)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Tool {tool_id} not found.") from None


@router.post("/{tool_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tool(tool_id: int, db: DbSession) -> None:
    try:
        await tool_manager.delete_tool(db, tool_id)
    except LookupError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Tool {tool_id} not found.") from None

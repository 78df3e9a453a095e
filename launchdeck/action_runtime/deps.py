"""FastAPI dependency injection for DB sessions and runtime components.

Usage in route handlers::

    @router.post("/things")
    async def create_thing(db: DbSession, thing: ThingCreate) -> ThingResponse:
        ...

    @router.post("/launch")
    async def launch(coordinator: Coordinator) -> LaunchSummary:
        ...

Runtime components are created once in the app lifespan and stored on
``app.state``; these dependencies only hand them out.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.events import EventEmitter
from launchdeck.action_runtime.execution.coordinator import LaunchCoordinator
from launchdeck.action_runtime.execution.tracker import RunTracker
from launchdeck.action_runtime.registry import ActiveRunRegistry


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an async SQLAlchemy session, closing it after the request.

    The caller (route handler, via a manager) is responsible for calling
    ``session.commit()`` on success.
    """
    session_factory = request.app.state.db_session_factory
    if session_factory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not initialised.",
        )
    session: AsyncSession = session_factory()
    try:
        yield session
    finally:
        await session.close()


def _component(request: Request, name: str) -> object:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Runtime component '{name}' not initialised.",
        )
    return component


def get_coordinator(request: Request) -> LaunchCoordinator:
    return _component(request, "coordinator")  # type: ignore[return-value]


def get_tracker(request: Request) -> RunTracker:
    return _component(request, "tracker")  # type: ignore[return-value]


def get_registry(request: Request) -> ActiveRunRegistry:
    return _component(request, "registry")  # type: ignore[return-value]


def get_emitter(request: Request) -> EventEmitter:
    return _component(request, "emitter")  # type: ignore[return-value]


# -- Annotated type aliases for concise route signatures ---------------------

DbSession = Annotated[AsyncSession, Depends(get_db)]
"""Annotated dependency: async SQLAlchemy session (auto-closed after request)."""

Coordinator = Annotated[LaunchCoordinator, Depends(get_coordinator)]
Tracker = Annotated[RunTracker, Depends(get_tracker)]
Registry = Annotated[ActiveRunRegistry, Depends(get_registry)]
Emitter = Annotated[EventEmitter, Depends(get_emitter)]

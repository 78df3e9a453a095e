"""Run history and control endpoints (RPC-style).

History comes from the run tracker (persisted rows); live state comes
from the active run registry.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from launchdeck.action_runtime.deps import DbSession, Registry, Tracker
from launchdeck.action_runtime.execution.tracker import RunNotFoundError
from launchdeck.action_runtime.managers.settings import load_launch_preferences
from launchdeck.action_runtime.models.api import ActiveRunResponse, CancelResponse, PruneResponse, RunResponse
from launchdeck.action_runtime.models.enums import RunStatus

router = APIRouter(prefix="/runs", tags=["runs"])


@router.get("/list", response_model=list[RunResponse])
async def list_runs(
    tracker: Tracker,
    workspace_id: int | None = Query(None),
    action_id: int | None = Query(None),
    status: RunStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> list[RunResponse]:
    """Run history, most recent first."""
    return await tracker.list_runs(
        workspace_id=workspace_id,
        action_id=action_id,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.get("/active", response_model=list[ActiveRunResponse])
async def list_active_runs(registry: Registry, workspace_id: int | None = Query(None)) -> list[ActiveRunResponse]:
    live_runs = registry.for_workspace(workspace_id) if workspace_id is not None else registry.all_runs()
    return [
        ActiveRunResponse(
            run_id=live_run.run_id,
            workspace_id=live_run.workspace_id,
            action_id=live_run.action_id,
            process_id=live_run.process_id,
            cancel_requested=live_run.cancel_requested,
        )
        for live_run in live_runs
    ]


@router.get("/{run_id}/get", response_model=RunResponse)
async def get_run(
    run_id: int,
    tracker: Tracker,
    include_logs: bool = Query(False, description="Include captured log lines."),
) -> RunResponse:
    try:
        return await tracker.get_run(run_id, include_logs=include_logs)
    except RunNotFoundError:
        raise HTTPException(404, detail=f"Run {run_id} not found.") from None


@router.post("/{run_id}/cancel", response_model=CancelResponse)
async def cancel_run(run_id: int, tracker: Tracker, registry: Registry) -> CancelResponse:
    """Request cancellation.  A run that is no longer live is left untouched."""
    if registry.cancel(run_id):
        return CancelResponse(run_id=run_id, cancelled=True, message="Cancellation requested")
    try:
        run = await tracker.get_run(run_id)
    except RunNotFoundError:
        raise HTTPException(404, detail=f"Run {run_id} not found.") from None
    return CancelResponse(run_id=run_id, cancelled=False, message=f"Run is not active (status: {run.status})")


@router.post("/prune", response_model=PruneResponse)
async def prune_runs(
    db: DbSession,
    tracker: Tracker,
    older_than_days: int | None = Query(None, ge=0, description="Defaults to the log_retention_days setting."),
) -> PruneResponse:
    if older_than_days is None:
        older_than_days = (await load_launch_preferences(db)).log_retention_days
    deleted = await tracker.prune_runs(older_than_days)
    return PruneResponse(deleted=deleted, retention_days=older_than_days)

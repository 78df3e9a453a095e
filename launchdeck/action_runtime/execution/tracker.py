"""Run tracker -- owns the run lifecycle state machine and its persistence.

::

    pending --> running --> succeeded | failed | cancelled
    pending --> failed | cancelled          (nothing was spawned)

Each transition is written in its own transaction and committed before the
method returns, so an event emitted afterwards never describes a state more
advanced than what a history query would return.

Terminal runs are immutable history rows.  Only ``prune_runs`` removes
them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from launchdeck.action_runtime.db.tables import Run as RunRow
from launchdeck.action_runtime.db.tables import RunLog as RunLogRow
from launchdeck.action_runtime.models.api import RunLogResponse, RunResponse
from launchdeck.action_runtime.models.enums import TERMINAL_STATUSES, LogLevel, RunStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RunNotFoundError(LookupError):
    def __init__(self, run_id: int) -> None:
        super().__init__(f"Run {run_id} not found")


class InvalidTransitionError(RuntimeError):
    def __init__(self, run_id: int, current: RunStatus, target: RunStatus) -> None:
        super().__init__(f"Run {run_id} cannot go from {current} to {target}")
        self.current = current
        self.target = target


class RunPersistenceError(RuntimeError):
    """A run transition or log batch could not be written to the store."""


_ALLOWED: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.FAILED, RunStatus.CANCELLED}),
    RunStatus.RUNNING: frozenset({RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.CANCELLED}),
    RunStatus.SUCCEEDED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class CapturedLine:
    seq: int
    level: LogLevel
    message: str


def _now() -> datetime:
    return datetime.now(UTC)


def exit_code_message(exit_code: int) -> str:
    if exit_code < 0:
        return f"Process terminated by signal {-exit_code}"
    return f"Process exited with code {exit_code}"


class RunTracker:
    """Persists run transitions through a session factory.

    One session (and one transaction) per call.  Database errors surface as
    ``RunPersistenceError``; state machine violations as
    ``InvalidTransitionError``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- Create ----------------------------------------------------------------

    async def create_run(self, workspace_id: int, action_id: int) -> RunResponse:
        try:
            async with self._session_factory() as db, db.begin():
                row = RunRow(
                    workspace_id=workspace_id,
                    action_id=action_id,
                    status=RunStatus.PENDING,
                    started_at=_now(),
                )
                db.add(row)
                await db.flush()
                record = RunResponse.model_validate(row)
        except SQLAlchemyError as exc:
            msg = f"Could not create run for action {action_id}: {exc}"
            raise RunPersistenceError(msg) from exc
        logger.debug("Run {} created (workspace={}, action={})", record.id, workspace_id, action_id)
        return record

    # -- Transitions -----------------------------------------------------------

    async def mark_running(self, run_id: int, process_id: int | None = None) -> RunResponse:
        return await self._transition(run_id, RunStatus.RUNNING, process_id=process_id)

    async def mark_succeeded(self, run_id: int, exit_code: int | None = None) -> RunResponse:
        return await self._transition(run_id, RunStatus.SUCCEEDED, exit_code=exit_code, error_message=None)

    async def mark_failed(self, run_id: int, error_message: str, exit_code: int | None = None) -> RunResponse:
        return await self._transition(run_id, RunStatus.FAILED, exit_code=exit_code, error_message=error_message)

    async def mark_cancelled(self, run_id: int) -> RunResponse:
        return await self._transition(run_id, RunStatus.CANCELLED, exit_code=None, error_message=None)

    async def complete_from_exit(self, run_id: int, exit_code: int) -> RunResponse:
        """Exit code 0 => succeeded; anything else => failed with a derived message."""
        if exit_code == 0:
            return await self.mark_succeeded(run_id, exit_code=0)
        return await self.mark_failed(run_id, exit_code_message(exit_code), exit_code=exit_code)

    async def _transition(self, run_id: int, target: RunStatus, **values: object) -> RunResponse:
        try:
            async with self._session_factory() as db, db.begin():
                row = await db.get(RunRow, run_id)
                if row is None:
                    raise RunNotFoundError(run_id)
                current = RunStatus(row.status)
                if target not in _ALLOWED[current]:
                    raise InvalidTransitionError(run_id, current, target)

                row.status = target
                for key, value in values.items():
                    setattr(row, key, value)
                if target in TERMINAL_STATUSES:
                    row.ended_at = _now()
                    row.process_id = None
                record = RunResponse.model_validate(row)
        except SQLAlchemyError as exc:
            msg = f"Could not persist run {run_id} -> {target}: {exc}"
            raise RunPersistenceError(msg) from exc

        logger.debug("Run {}: {} -> {}", run_id, current, target)
        return record

    # -- Logs ------------------------------------------------------------------

    async def append_logs(self, run_id: int, lines: Sequence[CapturedLine]) -> None:
        if not lines:
            return
        try:
            async with self._session_factory() as db, db.begin():
                db.add_all(
                    RunLogRow(run_id=run_id, seq=line.seq, level=line.level, message=line.message) for line in lines
                )
        except SQLAlchemyError as exc:
            msg = f"Could not persist {len(lines)} log lines for run {run_id}: {exc}"
            raise RunPersistenceError(msg) from exc

    # -- Read ------------------------------------------------------------------

    async def get_run(self, run_id: int, *, include_logs: bool = False) -> RunResponse:
        async with self._session_factory() as db:
            row = await db.get(RunRow, run_id)
            if row is None:
                raise RunNotFoundError(run_id)
            record = RunResponse.model_validate(row)
            if include_logs:
                record.logs = await _load_logs(db, run_id)
        return record

    async def list_runs(
        self,
        *,
        workspace_id: int | None = None,
        action_id: int | None = None,
        status: RunStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RunResponse]:
        """Run history, most recent first."""
        stmt = select(RunRow).order_by(RunRow.started_at.desc(), RunRow.id.desc())
        if workspace_id is not None:
            stmt = stmt.where(RunRow.workspace_id == workspace_id)
        if action_id is not None:
            stmt = stmt.where(RunRow.action_id == action_id)
        if status is not None:
            stmt = stmt.where(RunRow.status == status)
        stmt = stmt.limit(limit).offset(offset)

        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [RunResponse.model_validate(row) for row in result.scalars().all()]

    # -- Retention -------------------------------------------------------------

    async def prune_runs(self, older_than_days: int, *, now: datetime | None = None) -> int:
        """Delete terminal runs that ended more than *older_than_days* ago."""
        cutoff = (now or _now()) - timedelta(days=older_than_days)
        stmt = delete(RunRow).where(
            RunRow.status.in_([str(s) for s in TERMINAL_STATUSES]),
            RunRow.ended_at.is_not(None),
            RunRow.ended_at < cutoff,
        )
        async with self._session_factory() as db, db.begin():
            result = await db.execute(stmt)
        count = result.rowcount or 0
        if count:
            logger.info("Retention: pruned {} runs older than {} days", count, older_than_days)
        return count

    # -- Startup recovery ------------------------------------------------------

    async def recover_orphaned_runs(self) -> int:
        """Fail runs left pending/running by a previous process.

        Called once at startup to reconcile the store with the (empty)
        active run registry.
        """
        stmt = (
            update(RunRow)
            .where(RunRow.status.in_([RunStatus.PENDING, RunStatus.RUNNING]))
            .values(
                status=RunStatus.FAILED,
                process_id=None,
                ended_at=_now(),
                error_message="Interrupted: launcher restarted before the run completed",
            )
        )
        async with self._session_factory() as db, db.begin():
            result = await db.execute(stmt)
        count = result.rowcount or 0
        if count > 0:
            logger.warning("Startup recovery: marked {} orphaned runs as failed", count)
        return count


async def _load_logs(db: AsyncSession, run_id: int) -> list[RunLogResponse]:
    stmt = select(RunLogRow).where(RunLogRow.run_id == run_id).order_by(RunLogRow.seq)
    result = await db.execute(stmt)
    return [RunLogResponse.model_validate(row) for row in result.scalars().all()]

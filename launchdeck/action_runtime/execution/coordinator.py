"""Launch coordinator -- fans a workspace launch out into per-action runs.

For every action in the request the coordinator starts one task that:

1. **Creates** the run (``pending``)
2. **Resolves** variables (global < workspace < action) and **expands** the
   action into an invocation
3. **Launches** it through the ``ActionLauncher``, which drives the run to a
   terminal state and emits its events

Each task resolves a "started" future as soon as its run has left
``pending``.  ``launch_workspace`` returns once every future is resolved;
the tasks keep running in the background (tracked here, awaited by
``wait_for_idle``).  In sequential mode action k+1 is only created once
action k has started; nothing waits for a run to finish.

At server startup ``launch_auto_actions`` launches the actions flagged
``auto_launch``, grouped per workspace.

Actions are isolated from each other: one failing action never prevents
or aborts the others, it only flips the aggregate ``success`` flag.
"""

from __future__ import annotations

import asyncio
import logging
from itertools import groupby
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from launchdeck.action_runtime.context import LiveRun
from launchdeck.action_runtime.execution.expander import ExpansionError, apply_os_overrides, expand_action
from launchdeck.action_runtime.execution.tracker import RunPersistenceError
from launchdeck.action_runtime.execution.variables import resolve_variables
from launchdeck.action_runtime.managers.actions import ActionNotFoundError, list_actions, list_auto_launch_actions
from launchdeck.action_runtime.managers.settings import load_launch_preferences, platform_name
from launchdeck.action_runtime.managers.tools import get_tools
from launchdeck.action_runtime.managers.workspaces import WorkspaceNotFoundError, get_workspace
from launchdeck.action_runtime.models.enums import ActionType
from launchdeck.action_runtime.models.launch import (
    LaunchActionRequest,
    LaunchResult,
    LaunchSummary,
    LaunchWorkspaceRequest,
)
from launchdeck.action_runtime.registry import ShuttingDownError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchdeck.action_runtime.db.tables import Action, Tool
    from launchdeck.action_runtime.execution.launcher import ActionLauncher
    from launchdeck.action_runtime.execution.tracker import RunTracker
    from launchdeck.action_runtime.managers.settings import LaunchPreferences
    from launchdeck.action_runtime.registry import ActiveRunRegistry

logger = logging.getLogger(__name__)

StartedFuture = asyncio.Future[LaunchResult]


def _tool_id(action: LaunchActionRequest) -> int | None:
    if action.action_type != ActionType.TOOL:
        return None
    try:
        return int(action.config["tool_id"])
    except (KeyError, TypeError, ValueError):
        return None


def _resolve(future: StartedFuture, result: LaunchResult) -> None:
    if not future.done():
        future.set_result(result)


class LaunchCoordinator:
    """Orchestrates workspace launches.

    Parameters
    ----------
    session_factory:
        Used for read-only lookups (variables, tools, preferences, saved actions).
    tracker:
        Creates the run rows.
    registry:
        Consulted to refuse launches during shutdown.
    launcher:
        Executes each expanded invocation.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        tracker: RunTracker,
        registry: ActiveRunRegistry,
        launcher: ActionLauncher,
    ) -> None:
        self._session_factory = session_factory
        self._tracker = tracker
        self._registry = registry
        self._launcher = launcher
        self._tasks: set[asyncio.Task[None]] = set()

    # -- Public API ------------------------------------------------------------

    async def launch_workspace(
        self,
        request: LaunchWorkspaceRequest,
        *,
        sequential: bool = False,
    ) -> LaunchSummary:
        """Launch every action of *request* and wait until each has started.

        Raises ``ShuttingDownError`` if the runtime is shutting down and
        ``WorkspaceNotFoundError`` for an unknown workspace.
        """
        if self._registry.is_shutting_down:
            msg = "Launcher is shutting down"
            raise ShuttingDownError(msg)

        async with self._session_factory() as db:
            await get_workspace(db, request.workspace_id)
            prefs = await load_launch_preferences(db)
            tool_ids = {tool_id for action in request.actions if (tool_id := _tool_id(action)) is not None}
            tools = await get_tools(db, tool_ids)

        if not request.actions:
            return LaunchSummary(success=True, message="No actions to launch")

        loop = asyncio.get_running_loop()
        futures: list[StartedFuture] = [loop.create_future() for _ in request.actions]
        live_runs: list[LiveRun] = []

        async def run_one(action: LaunchActionRequest, future: StartedFuture) -> None:
            try:
                await self._run_action(request.workspace_id, action, prefs, tools, future, live_runs)
            except Exception as exc:
                logger.exception("Launch of action %s crashed", action.action_id)
                _resolve(future, LaunchResult(success=False, message=str(exc), action_id=action.action_id))

        if sequential:

            async def run_all() -> None:
                # Spawn order only: action k+1 starts once action k has left pending.
                for action, future in zip(request.actions, futures, strict=True):
                    self._track(asyncio.create_task(run_one(action, future)))
                    await asyncio.shield(future)

            self._track(asyncio.create_task(run_all()))
        else:
            for action, future in zip(request.actions, futures, strict=True):
                self._track(asyncio.create_task(run_one(action, future)))

        results = list(await asyncio.gather(*futures))
        persisted = not any(live_run.persistence_failed for live_run in live_runs) and all(
            result.run_id is not None for result in results
        )
        summary = _summarize(results, persisted)
        logger.info("Workspace %s launch: %s", request.workspace_id, summary.message)
        return summary

    async def launch_saved_workspace(
        self,
        workspace_id: int,
        *,
        action_ids: Sequence[int] | None = None,
        overrides: Mapping[str, str] | None = None,
        sequential: bool = False,
    ) -> LaunchSummary:
        """Launch a workspace's stored actions (all, or the given subset) in ``order_index`` order.

        Raises ``ActionNotFoundError`` if *action_ids* names an action that
        does not belong to the workspace.
        """
        async with self._session_factory() as db:
            await get_workspace(db, workspace_id)
            actions = await list_actions(db, workspace_id)

        if action_ids is not None:
            wanted = set(action_ids)
            missing = wanted - {action.id for action in actions}
            if missing:
                raise ActionNotFoundError(sorted(missing)[0])
            actions = [action for action in actions if action.id in wanted]

        request = LaunchWorkspaceRequest(
            workspace_id=workspace_id,
            actions=[_saved_request(action, overrides) for action in actions],
        )
        return await self.launch_workspace(request, sequential=sequential)

    async def launch_auto_actions(self) -> list[LaunchSummary]:
        """Launch every ``auto_launch`` action, one workspace launch per workspace.

        Command actions run detached unless their config says otherwise.  A
        workspace whose launch cannot even begin is logged and skipped.
        """
        async with self._session_factory() as db:
            actions = await list_auto_launch_actions(db)

        summaries = []
        for workspace_id, group in groupby(actions, key=lambda action: action.workspace_id):
            request = LaunchWorkspaceRequest(
                workspace_id=workspace_id,
                actions=[_saved_request(action, None, detach=True) for action in group],
            )
            try:
                summaries.append(await self.launch_workspace(request))
            except (ShuttingDownError, WorkspaceNotFoundError, SQLAlchemyError) as exc:
                logger.warning("Auto-launch of workspace %s skipped: %s", workspace_id, exc)
        return summaries

    async def wait_for_idle(self, timeout: float | None = None) -> bool:
        """Wait for every background launch task to finish.

        Returns ``False`` if *timeout* expired first.
        """
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # -- Per-action unit -------------------------------------------------------

    async def _run_action(
        self,
        workspace_id: int,
        action: LaunchActionRequest,
        prefs: LaunchPreferences,
        tools: Mapping[int, Tool],
        future: StartedFuture,
        live_runs: list[LiveRun],
    ) -> None:
        try:
            run = await self._tracker.create_run(workspace_id, action.action_id)
        except RunPersistenceError as exc:
            # Without a run row there is no run ID to report events against.
            logger.error("Action %s: %s", action.action_id, exc)  # noqa: TRY400
            _resolve(future, LaunchResult(success=False, message=str(exc), action_id=action.action_id))
            return

        live_run = LiveRun(run_id=run.id, workspace_id=workspace_id, action_id=action.action_id)
        live_runs.append(live_run)

        try:
            async with self._session_factory() as db:
                variables = await resolve_variables(db, workspace_id, action.variables)
            tool_id = _tool_id(action)
            expanded = expand_action(
                action.action_type,
                action.config,
                variables,
                prefs,
                tools.get(tool_id) if tool_id is not None else None,
            )
        except (ExpansionError, SQLAlchemyError) as exc:
            logger.warning("Run %s: cannot prepare action %s: %s", run.id, action.action_id, exc)
            await self._launcher.fail_before_start(live_run, str(exc))
            _resolve(future, LaunchResult(success=False, message=str(exc), run_id=run.id, action_id=action.action_id))
            return

        await self._launcher.launch(
            expanded.invocation,
            live_run,
            on_started=lambda result: _resolve(future, result),
            warnings=[str(warning) for warning in expanded.warnings],
            timeout=action.timeout_seconds,
        )

    def _track(self, task: asyncio.Task[None]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _summarize(results: list[LaunchResult], persisted: bool) -> LaunchSummary:
    failed = [result for result in results if not result.success]
    if not failed:
        message = f"Launched {len(results)} action(s)"
    else:
        message = f"{len(failed)} of {len(results)} action(s) failed to launch: " + "; ".join(
            result.message for result in failed
        )
    if not persisted:
        message += " (some run state could not be saved)"
    return LaunchSummary(success=not failed, message=message, results=results, persisted=persisted)


def _saved_request(
    action: Action,
    overrides: Mapping[str, str] | None,
    *,
    detach: bool = False,
) -> LaunchActionRequest:
    """Turn a stored action into a launch request for the current platform."""
    config = apply_os_overrides(action.config or {}, action.os_overrides, platform_name())
    if action.detached:
        config["detached"] = True
    elif detach and action.action_type == ActionType.COMMAND:
        config.setdefault("detached", True)
    if not action.track_process:
        config["track_process"] = False
    if action.tool_id is not None:
        config.setdefault("tool_id", action.tool_id)
    return LaunchActionRequest(
        action_id=action.id,
        action_type=ActionType(action.action_type),
        config=config,
        variables=dict(overrides or {}),
        timeout_seconds=action.timeout_seconds,
    )

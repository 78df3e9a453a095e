"""Assembly of the runtime components.

Everything is wired explicitly: the registry, emitter, and tracker are
passed to the launcher and coordinator instead of being looked up as
module globals.  The HTTP app and the CLI both build their runtime here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from launchdeck.action_runtime.events import EventEmitter
from launchdeck.action_runtime.execution.coordinator import LaunchCoordinator
from launchdeck.action_runtime.execution.launcher import ActionLauncher
from launchdeck.action_runtime.execution.retention import RetentionSweeper
from launchdeck.action_runtime.execution.tracker import RunTracker
from launchdeck.action_runtime.registry import ActiveRunRegistry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchdeck.action_runtime.execution.launcher import UrlOpener
    from launchdeck.action_runtime.settings import LaunchdeckSettings


@dataclass
class Runtime:
    tracker: RunTracker
    registry: ActiveRunRegistry
    emitter: EventEmitter
    launcher: ActionLauncher
    coordinator: LaunchCoordinator
    sweeper: RetentionSweeper


def build_runtime(
    session_factory: async_sessionmaker[AsyncSession],
    settings: LaunchdeckSettings,
    *,
    url_opener: UrlOpener | None = None,
) -> Runtime:
    tracker = RunTracker(session_factory)
    registry = ActiveRunRegistry(cancel_grace_seconds=settings.cancel_grace_seconds)
    emitter = EventEmitter(default_queue_size=settings.log_queue_size)
    launcher = ActionLauncher(
        tracker=tracker,
        emitter=emitter,
        registry=registry,
        url_opener=url_opener,
        log_queue_size=settings.log_queue_size,
        log_flush_lines=settings.log_flush_lines,
        max_persisted_lines=settings.max_log_lines_per_run,
    )
    coordinator = LaunchCoordinator(
        session_factory=session_factory,
        tracker=tracker,
        registry=registry,
        launcher=launcher,
    )
    sweeper = RetentionSweeper(
        session_factory=session_factory,
        tracker=tracker,
        interval=settings.retention_sweep_interval,
    )
    return Runtime(
        tracker=tracker,
        registry=registry,
        emitter=emitter,
        launcher=launcher,
        coordinator=coordinator,
        sweeper=sweeper,
    )


async def drain(runtime: Runtime, timeout: float) -> None:
    """Refuse new launches, release detached processes, wait for live runs, cancel whatever is left."""
    registry = runtime.registry
    registry.begin_shutdown()
    registry.release_detached()
    if registry.active_count > 0:
        drained = await registry.wait_until_drained(timeout=timeout)
        if not drained:
            registry.cancel_all()
            await registry.wait_until_drained(timeout=10.0)
    await runtime.coordinator.wait_for_idle(timeout=5.0)

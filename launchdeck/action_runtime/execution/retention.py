"""Periodic pruning of old run history.

Runs as a background task independent of launches.  The retention period
is read from the ``log_retention_days`` preference on every pass, so
changing the setting takes effect at the next sweep without a restart.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from launchdeck.action_runtime.managers.settings import load_launch_preferences

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from launchdeck.action_runtime.execution.tracker import RunTracker


class RetentionSweeper:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        tracker: RunTracker,
        interval: float,
    ) -> None:
        self._session_factory = session_factory
        self._tracker = tracker
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Prune terminal runs older than the configured retention.  Returns the count."""
        async with self._session_factory() as db:
            prefs = await load_launch_preferences(db)
        return await self._tracker.prune_runs(prefs.log_retention_days)

    def start(self) -> None:
        if self._interval <= 0:
            logger.info("Retention sweeper disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="retention-sweeper")
        logger.info("Retention sweeper started (interval={}s)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except Exception:
                # A failed pass must not end the loop.
                logger.exception("Retention sweep failed; retrying next interval")
            await asyncio.sleep(self._interval)

"""Active run registry.

Tracks live runs (those that entered ``running`` and have not reached a
terminal state) with their process handle and cancellation token.
Ephemeral -- empty on process restart.  All durable state lives in the
``runs`` table.

The registry is owned by whoever builds the coordinator (app lifespan, CLI)
and injected into the code that needs lookup or cancellation.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import threading
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from launchdeck.action_runtime.context import LiveRun


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a run during shutdown."""


def _signal_process(live_run: LiveRun, sig: int) -> bool:
    """Send *sig* to the run's process group.  Returns False if it is already gone."""
    process = live_run.process
    if process is None or process.returncode is not None:
        return False
    try:
        if sys.platform == "win32":
            if sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()
        else:
            # Launched with start_new_session=True, so pgid == pid.
            os.killpg(process.pid, sig)
    except ProcessLookupError:
        return False
    return True


class ActiveRunRegistry:
    """Lock-guarded registry of currently executing runs.

    Multiple launches and cancellations may touch the registry at the same
    time, so every mutation happens under ``self._lock``.

    The registry also provides a drain mechanism for graceful shutdown:
    ``wait_until_drained`` blocks until all runs have been unregistered.
    """

    def __init__(self, cancel_grace_seconds: float = 5.0) -> None:
        self._runs: dict[int, LiveRun] = {}
        self._lock = threading.Lock()
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no runs).
        self._shutting_down = False
        self._cancel_grace_seconds = cancel_grace_seconds

    # -- Mutation --------------------------------------------------------------

    def register(self, live_run: LiveRun) -> None:
        """Register a live run.  Raises ``ShuttingDownError`` if shutting down."""
        with self._lock:
            if self._shutting_down:
                msg = "Launcher is shutting down"
                raise ShuttingDownError(msg)
            self._runs[live_run.run_id] = live_run
            self._drain_event.clear()
        logger.debug("Registry: register run {} (pid={})", live_run.run_id, live_run.process_id)

    def unregister(self, run_id: int) -> LiveRun | None:
        with self._lock:
            live_run = self._runs.pop(run_id, None)
            if not self._runs:
                self._drain_event.set()
        if live_run:
            logger.debug("Registry: unregister run {}", run_id)
        return live_run

    # -- Query -----------------------------------------------------------------

    def get(self, run_id: int) -> LiveRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def for_workspace(self, workspace_id: int) -> list[LiveRun]:
        """Return all live runs belonging to a workspace."""
        with self._lock:
            return [r for r in self._runs.values() if r.workspace_id == workspace_id]

    def all_runs(self) -> list[LiveRun]:
        """Return a snapshot of all live runs."""
        with self._lock:
            return list(self._runs.values())

    @property
    def active_count(self) -> int:
        return len(self._runs)

    # -- Control ---------------------------------------------------------------

    def cancel(self, run_id: int) -> bool:
        """Request cancellation of a live run.

        Sets the run's cancel token and, for process-backed runs, sends
        SIGTERM to the process group, escalating to SIGKILL if the process
        is still alive after the grace period.  The run itself is marked
        ``cancelled`` by its launch task once the process has exited.

        Returns ``False`` when the run is not live (unknown or already
        terminal): nothing was done.
        """
        live_run = self.get(run_id)
        if live_run is None:
            return False

        live_run.cancel_event.set()
        if _signal_process(live_run, signal.SIGTERM):
            logger.info("Registry: sent SIGTERM to run {} (pid={})", run_id, live_run.process_id)
            self._schedule_kill(live_run)
        else:
            logger.info("Registry: cancelled run {} (no live process)", run_id)
        return True

    def cancel_all(self) -> int:
        """Cancel every live run.  Returns the number of runs signalled."""
        return sum(1 for live_run in self.all_runs() if self.cancel(live_run.run_id))

    def release_detached(self) -> int:
        """Stop waiting on detached processes; they keep running after the launcher exits.

        Returns the number of runs released.
        """
        released = 0
        for live_run in self.all_runs():
            if live_run.detached and not live_run.release_event.is_set():
                live_run.release_event.set()
                released += 1
        if released:
            logger.info("Registry: released {} detached run(s)", released)
        return released

    def _schedule_kill(self, live_run: LiveRun) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        def _escalate() -> None:
            if _signal_process(live_run, getattr(signal, "SIGKILL", signal.SIGTERM)):
                logger.warning("Registry: run {} ignored SIGTERM, sent SIGKILL", live_run.run_id)

        loop.call_later(self._cancel_grace_seconds, _escalate)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        with self._lock:
            self._shutting_down = True
            if not self._runs:
                self._drain_event.set()
        logger.info("Registry: shutdown initiated, refusing new runs")

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all runs have been unregistered (drained).

        Returns ``True`` if the registry is empty, ``False`` if *timeout*
        expired with runs still live.
        """
        if not self._runs:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} runs still live",
                timeout,
                len(self._runs),
            )
            return False
        else:
            return True

"""Action launcher -- executes one expanded invocation for one run.

The launcher drives the run from ``pending`` to a terminal state:

1. Register the live run (so it can be cancelled from the first moment).
2. Spawn / open / wait, persisting ``running`` and emitting action-started.
3. Forward captured output as action-log events while the process runs.
   Detached processes have no output to forward; only their exit is awaited.
4. Persist the terminal state, then emit action-completed.

Output capture: stdout (level ``info``) and stderr (level ``error``) are read
line by line by two pump tasks feeding one bounded queue.  A line longer
than the reader limit is forwarded in chunks rather than dropped.  A single
forwarder drains the queue, so each stream keeps its own order and the two
interleave in arrival order.  The bounded queue applies back-pressure to the
pumps instead of buffering without limit; lines are persisted in batches.

The launcher never retries.  Persistence failures are logged and recorded on
the live run; events still report the in-memory outcome.
"""

from __future__ import annotations

import asyncio
import subprocess
import sys
import webbrowser
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from anyio import to_thread
from loguru import logger

from launchdeck.action_runtime.execution.expander import DelayInvocation, ProcessInvocation, UrlInvocation
from launchdeck.action_runtime.execution.tracker import CapturedLine, RunPersistenceError, exit_code_message
from launchdeck.action_runtime.models.enums import LogLevel, RunStatus
from launchdeck.action_runtime.models.events import ActionCompletedEvent, ActionLogEvent, ActionStartedEvent
from launchdeck.action_runtime.models.launch import LaunchResult
from launchdeck.action_runtime.registry import ShuttingDownError

if TYPE_CHECKING:
    from asyncio.subprocess import Process

    from launchdeck.action_runtime.context import LiveRun
    from launchdeck.action_runtime.events import EventEmitter
    from launchdeck.action_runtime.execution.expander import Invocation
    from launchdeck.action_runtime.execution.tracker import RunTracker
    from launchdeck.action_runtime.registry import ActiveRunRegistry

UrlOpener = Callable[[str], bool]
StartedCallback = Callable[[LaunchResult], None]

_LINE_LIMIT = 1024 * 1024

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SpawnError(OSError):
    """The OS refused to create the process (binary missing, permission denied, ...)."""


class ProcessError(RuntimeError):
    """The process exited with a nonzero code."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(exit_code_message(exit_code))
        self.exit_code = exit_code


class CancellationRequested(Exception):  # noqa: N818
    """The user cancelled the run.  Not a failure."""


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class LaunchOutcome:
    """Terminal outcome of one run."""

    status: RunStatus
    exit_code: int | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED


# ---------------------------------------------------------------------------
# Per-run log sink
# ---------------------------------------------------------------------------


class _RunLogSink:
    """Numbers captured lines, emits them, and persists them in batches."""

    def __init__(self, launcher: ActionLauncher, live_run: LiveRun, warnings: list[str] | None = None) -> None:
        self._launcher = launcher
        self._live_run = live_run
        self._seq = 0
        self._pending: list[CapturedLine] = []
        # Held back until action-started has been emitted.
        self._deferred = list(warnings or [])

    def release_deferred(self) -> None:
        deferred, self._deferred = self._deferred, []
        for message in deferred:
            self.write(LogLevel.WARN, message)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def write(self, level: LogLevel, message: str) -> None:
        self._seq += 1
        run = self._live_run
        self._launcher.emitter.publish(
            ActionLogEvent(
                action_id=run.action_id,
                workspace_id=run.workspace_id,
                run_id=run.run_id,
                level=level,
                message=message,
            )
        )
        if self._seq <= self._launcher.max_persisted_lines:
            self._pending.append(CapturedLine(seq=self._seq, level=level, message=message))

    async def flush(self) -> None:
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        try:
            await self._launcher.tracker.append_logs(self._live_run.run_id, batch)
        except RunPersistenceError:
            logger.exception("Run {}: dropping {} unpersisted log lines", self._live_run.run_id, len(batch))
            self._live_run.persistence_failed = True


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


async def _sleep_unless_cancelled(live_run: LiveRun, seconds: float) -> None:
    """Sleep for *seconds*.  Raises ``CancellationRequested`` if the run is cancelled first."""
    try:
        await asyncio.wait_for(live_run.cancel_event.wait(), timeout=seconds)
    except TimeoutError:
        return
    raise CancellationRequested(live_run.run_id)


def _spawn_kwargs(detached: bool) -> dict[str, Any]:
    if sys.platform == "win32":
        flags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0) | getattr(subprocess, "CREATE_NO_WINDOW", 0)
        if detached:
            flags |= getattr(subprocess, "DETACHED_PROCESS", 0)
        return {"creationflags": flags}
    return {"start_new_session": True}


# ---------------------------------------------------------------------------
# Launcher
# ---------------------------------------------------------------------------


class ActionLauncher:
    """Executes invocations and keeps the run, registry, and events in step."""

    def __init__(
        self,
        *,
        tracker: RunTracker,
        emitter: EventEmitter,
        registry: ActiveRunRegistry,
        url_opener: UrlOpener | None = None,
        log_queue_size: int = 1000,
        log_flush_lines: int = 50,
        max_persisted_lines: int = 10_000,
    ) -> None:
        self.tracker = tracker
        self.emitter = emitter
        self.registry = registry
        self.url_opener: UrlOpener = url_opener or webbrowser.open
        self.log_queue_size = log_queue_size
        self.log_flush_lines = log_flush_lines
        self.max_persisted_lines = max_persisted_lines

    async def launch(
        self,
        invocation: Invocation,
        live_run: LiveRun,
        *,
        on_started: StartedCallback | None = None,
        warnings: list[str] | None = None,
        timeout: float | None = None,
    ) -> LaunchOutcome:
        """Run *invocation* to a terminal state.

        *on_started* is called exactly once, as soon as the run has left
        ``pending`` (or failed trying), with the per-action ``LaunchResult``.
        A run still live after *timeout* seconds is stopped like a cancel
        and fails.
        """
        notified = False

        def started(result: LaunchResult) -> None:
            nonlocal notified
            if not notified:
                notified = True
                if on_started is not None:
                    on_started(result)

        log = _RunLogSink(self, live_run, warnings)

        try:
            self.registry.register(live_run)
        except ShuttingDownError as exc:
            self._emit_started(live_run, None, log)
            log.write(LogLevel.ERROR, str(exc))
            outcome = await self._finish(live_run, log, LaunchOutcome(RunStatus.FAILED, error_message=str(exc)))
            started(self._result(live_run, False, str(exc)))
            return outcome

        timer = None
        if timeout is not None:
            timer = asyncio.get_running_loop().call_later(timeout, self._expire, live_run, timeout)

        try:
            if live_run.cancel_requested:
                self._emit_started(live_run, None, log)
                outcome = await self._finish(live_run, log, LaunchOutcome(RunStatus.CANCELLED))
                started(self._result(live_run, False, "Cancelled before start"))
                return outcome

            if isinstance(invocation, ProcessInvocation):
                return await self._launch_process(invocation, live_run, log, started)
            if isinstance(invocation, UrlInvocation):
                return await self._launch_url(invocation, live_run, log, started)
            if isinstance(invocation, DelayInvocation):
                return await self._launch_delay(invocation, live_run, log, started)
            msg = f"Unsupported invocation: {invocation!r}"
            raise TypeError(msg)
        finally:
            if timer is not None:
                timer.cancel()
            self.registry.unregister(live_run.run_id)

    async def fail_before_start(self, live_run: LiveRun, error_message: str) -> LaunchOutcome:
        """Fail a run that never got an invocation (resolution or expansion error).

        The run still produces the full started -> log -> completed sequence.
        """
        log = _RunLogSink(self, live_run)
        self._emit_started(live_run, None, log)
        log.write(LogLevel.ERROR, error_message)
        return await self._finish(live_run, log, LaunchOutcome(RunStatus.FAILED, error_message=error_message))

    # -- Variants --------------------------------------------------------------

    async def _launch_process(
        self,
        invocation: ProcessInvocation,
        live_run: LiveRun,
        log: _RunLogSink,
        started: StartedCallback,
    ) -> LaunchOutcome:
        capture = not invocation.detached and invocation.track_exit
        pipe = asyncio.subprocess.PIPE if capture else asyncio.subprocess.DEVNULL
        try:
            process = await asyncio.create_subprocess_exec(
                invocation.executable,
                *invocation.args,
                cwd=invocation.working_directory,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=pipe,
                stderr=pipe,
                limit=_LINE_LIMIT,
                **_spawn_kwargs(invocation.detached),
            )
        except OSError as exc:
            error = SpawnError(f"Failed to spawn {invocation.executable}: {exc}")
            logger.warning("Run {}: {}", live_run.run_id, error)
            self._emit_started(live_run, None, log)
            log.write(LogLevel.ERROR, str(error))
            outcome = await self._finish(live_run, log, LaunchOutcome(RunStatus.FAILED, error_message=str(error)))
            started(self._result(live_run, False, str(error)))
            return outcome

        live_run.process = process
        live_run.process_id = process.pid
        live_run.detached = invocation.detached
        label = invocation.label or invocation.executable
        logger.info("Run {}: spawned {} (pid={})", live_run.run_id, invocation.describe(), process.pid)

        if not invocation.track_exit:
            # Editor and IDE windows outlive the run; it completes once spawned.
            await self._persist(live_run, self.tracker.mark_running(live_run.run_id))
            self._emit_started(live_run, process.pid, log)
            started(self._result(live_run, True, f"Launched: {label}"))
            return await self._finish(live_run, log, LaunchOutcome(RunStatus.SUCCEEDED))

        await self._persist(live_run, self.tracker.mark_running(live_run.run_id, process_id=process.pid))
        self._emit_started(live_run, process.pid, log)
        prefix = "Launched (detached)" if invocation.detached else "Started"
        started(self._result(live_run, True, f"{prefix}: {label}"))

        if live_run.cancel_requested:
            # Cancelled between registration and spawn.
            self.registry.cancel(live_run.run_id)

        if capture:
            exit_code = await self._capture_output(process, log)
        else:
            exit_code = await self._wait_detached(process, live_run)
            if exit_code is None:
                log.write(LogLevel.WARN, f"Launcher stopped; process {process.pid} left running")
                return await self._finish(live_run, log, LaunchOutcome(RunStatus.SUCCEEDED))

        if live_run.cancel_requested:
            logger.info("Run {}: stopped (exit={})", live_run.run_id, exit_code)
            return await self._finish(live_run, log, self._interrupted(live_run, log, exit_code))
        return await self._finish_from_exit(live_run, log, exit_code)

    async def _launch_url(
        self,
        invocation: UrlInvocation,
        live_run: LiveRun,
        log: _RunLogSink,
        started: StartedCallback,
    ) -> LaunchOutcome:
        await self._persist(live_run, self.tracker.mark_running(live_run.run_id))
        self._emit_started(live_run, None, log)

        error: str | None = None
        try:
            opened = await to_thread.run_sync(self.url_opener, invocation.url)
        except Exception as exc:
            error = f"Failed to open URL {invocation.url}: {exc}"
        else:
            if not opened:
                error = f"No handler could open URL {invocation.url}"

        if live_run.cancel_requested:
            outcome = self._interrupted(live_run, log)
        elif error is not None:
            log.write(LogLevel.ERROR, error)
            outcome = LaunchOutcome(RunStatus.FAILED, error_message=error)
        else:
            outcome = LaunchOutcome(RunStatus.SUCCEEDED)

        outcome = await self._finish(live_run, log, outcome)
        message = error or f"URL opened: {invocation.url}"
        started(self._result(live_run, outcome.success, message))
        return outcome

    async def _launch_delay(
        self,
        invocation: DelayInvocation,
        live_run: LiveRun,
        log: _RunLogSink,
        started: StartedCallback,
    ) -> LaunchOutcome:
        await self._persist(live_run, self.tracker.mark_running(live_run.run_id))
        self._emit_started(live_run, None, log)
        started(self._result(live_run, True, f"Delay started: {invocation.duration_ms} ms"))

        try:
            await _sleep_unless_cancelled(live_run, invocation.duration_ms / 1000)
        except CancellationRequested:
            return await self._finish(live_run, log, self._interrupted(live_run, log))
        return await self._finish(live_run, log, LaunchOutcome(RunStatus.SUCCEEDED))

    # -- Output capture --------------------------------------------------------

    async def _capture_output(self, process: Process, log: _RunLogSink) -> int:
        queue: asyncio.Queue[tuple[LogLevel, str] | None] = asyncio.Queue(maxsize=self.log_queue_size)

        async def pump(stream: asyncio.StreamReader | None, level: LogLevel) -> None:
            if stream is None:
                return
            overlong = False
            while True:
                try:
                    raw = await stream.readuntil(b"\n")
                except asyncio.IncompleteReadError as exc:
                    raw = exc.partial
                except asyncio.LimitOverrunError as exc:
                    # Longer than the reader limit: forward what is buffered as its own line.
                    await queue.put((level, _decode(await stream.read(exc.consumed))))
                    overlong = True
                    continue
                if not raw:
                    return
                if overlong and raw in (b"\n", b"\r\n"):
                    # Terminator of a line already forwarded in chunks.
                    overlong = False
                    continue
                overlong = False
                await queue.put((level, _decode(raw)))

        async def forward() -> None:
            while (item := await queue.get()) is not None:
                log.write(*item)
                if log.pending >= self.log_flush_lines:
                    await log.flush()

        forwarder = asyncio.create_task(forward())
        try:
            await asyncio.gather(pump(process.stdout, LogLevel.INFO), pump(process.stderr, LogLevel.ERROR))
        finally:
            await queue.put(None)
            await forwarder
        return await process.wait()

    async def _wait_detached(self, process: Process, live_run: LiveRun) -> int | None:
        """Exit code of a detached process, or ``None`` if the run was released first."""
        exited = asyncio.ensure_future(process.wait())
        released = asyncio.ensure_future(live_run.release_event.wait())
        try:
            await asyncio.wait({exited, released}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            released.cancel()
        if exited.done():
            return exited.result()
        exited.cancel()
        return None

    # -- Helpers ---------------------------------------------------------------

    def _expire(self, live_run: LiveRun, timeout: float) -> None:
        if live_run.cancel_requested:
            return
        logger.warning("Run {}: timed out after {}s", live_run.run_id, timeout)
        live_run.timed_out_after = timeout
        self.registry.cancel(live_run.run_id)

    @staticmethod
    def _interrupted(live_run: LiveRun, log: _RunLogSink, exit_code: int | None = None) -> LaunchOutcome:
        """Outcome of a run stopped through its cancel token: a timeout fails, a user cancel does not."""
        if live_run.timed_out_after is None:
            return LaunchOutcome(RunStatus.CANCELLED)
        error = f"Timed out after {live_run.timed_out_after:g}s"
        log.write(LogLevel.ERROR, error)
        return LaunchOutcome(RunStatus.FAILED, exit_code=exit_code, error_message=error)

    async def _finish_from_exit(self, live_run: LiveRun, log: _RunLogSink, exit_code: int) -> LaunchOutcome:
        """Let the tracker turn *exit_code* into the terminal state, then emit action-completed."""
        await log.flush()
        try:
            record = await self.tracker.complete_from_exit(live_run.run_id, exit_code)
        except RunPersistenceError:
            logger.exception("Run {}: transition could not be persisted", live_run.run_id)
            live_run.persistence_failed = True
            if exit_code == 0:
                outcome = LaunchOutcome(RunStatus.SUCCEEDED, exit_code=0)
            else:
                error = ProcessError(exit_code)
                outcome = LaunchOutcome(RunStatus.FAILED, exit_code=exit_code, error_message=str(error))
        else:
            outcome = LaunchOutcome(record.status, record.exit_code, record.error_message)
        self._emit_completed(live_run, outcome)
        return outcome

    async def _finish(self, live_run: LiveRun, log: _RunLogSink, outcome: LaunchOutcome) -> LaunchOutcome:
        """Flush logs, persist the terminal state, then emit action-completed."""
        await log.flush()
        run_id = live_run.run_id
        if outcome.status == RunStatus.SUCCEEDED:
            await self._persist(live_run, self.tracker.mark_succeeded(run_id, exit_code=outcome.exit_code))
        elif outcome.status == RunStatus.FAILED:
            await self._persist(
                live_run,
                self.tracker.mark_failed(run_id, outcome.error_message or "Action failed", exit_code=outcome.exit_code),
            )
        else:
            await self._persist(live_run, self.tracker.mark_cancelled(run_id))
        self._emit_completed(live_run, outcome)
        return outcome

    async def _persist(self, live_run: LiveRun, transition: Awaitable[object]) -> None:
        try:
            await transition
        except RunPersistenceError:
            logger.exception("Run {}: transition could not be persisted", live_run.run_id)
            live_run.persistence_failed = True

    def _emit_completed(self, live_run: LiveRun, outcome: LaunchOutcome) -> None:
        self.emitter.publish(
            ActionCompletedEvent(
                action_id=live_run.action_id,
                workspace_id=live_run.workspace_id,
                run_id=live_run.run_id,
                exit_code=outcome.exit_code,
                success=outcome.success,
            )
        )
        logger.info("Run {} finished: status={}, exit_code={}", live_run.run_id, outcome.status, outcome.exit_code)

    def _emit_started(self, live_run: LiveRun, process_id: int | None, log: _RunLogSink) -> None:
        self.emitter.publish(
            ActionStartedEvent(
                action_id=live_run.action_id,
                workspace_id=live_run.workspace_id,
                run_id=live_run.run_id,
                process_id=process_id,
            )
        )
        log.release_deferred()

    @staticmethod
    def _result(live_run: LiveRun, success: bool, message: str) -> LaunchResult:
        return LaunchResult(
            success=success,
            message=message,
            process_id=live_run.process_id,
            run_id=live_run.run_id,
            action_id=live_run.action_id,
        )

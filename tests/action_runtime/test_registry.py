"""Unit tests for the active run registry."""

from __future__ import annotations

import asyncio
import sys

import pytest

from launchdeck.action_runtime.context import LiveRun
from launchdeck.action_runtime.registry import ActiveRunRegistry, ShuttingDownError


def _live(run_id: int, workspace_id: int = 1) -> LiveRun:
    return LiveRun(run_id=run_id, workspace_id=workspace_id, action_id=run_id * 10)


# ---------------------------------------------------------------------------
# Register / lookup
# ---------------------------------------------------------------------------


def test_register_and_lookup() -> None:
    registry = ActiveRunRegistry()
    registry.register(_live(1, workspace_id=1))
    registry.register(_live(2, workspace_id=2))
    registry.register(_live(3, workspace_id=1))

    assert registry.active_count == 3
    assert registry.get(2) is not None
    assert registry.get(99) is None
    assert sorted(r.run_id for r in registry.for_workspace(1)) == [1, 3]
    assert len(registry.all_runs()) == 3


def test_unregister() -> None:
    registry = ActiveRunRegistry()
    registry.register(_live(1))
    assert registry.unregister(1) is not None
    assert registry.unregister(1) is None
    assert registry.active_count == 0


def test_register_refused_during_shutdown() -> None:
    registry = ActiveRunRegistry()
    registry.begin_shutdown()
    assert registry.is_shutting_down
    with pytest.raises(ShuttingDownError):
        registry.register(_live(1))


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def test_cancel_unknown_run_returns_false() -> None:
    assert ActiveRunRegistry().cancel(42) is False


def test_cancel_without_process_sets_event() -> None:
    registry = ActiveRunRegistry()
    live_run = _live(1)
    registry.register(live_run)

    assert registry.cancel(1) is True
    assert live_run.cancel_requested


def test_cancel_all() -> None:
    registry = ActiveRunRegistry()
    runs = [_live(i) for i in range(1, 4)]
    for live_run in runs:
        registry.register(live_run)

    assert registry.cancel_all() == 3
    assert all(r.cancel_requested for r in runs)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")
async def test_cancel_terminates_process_group() -> None:
    registry = ActiveRunRegistry(cancel_grace_seconds=0.5)
    process = await asyncio.create_subprocess_exec("sleep", "30", start_new_session=True)
    live_run = LiveRun(run_id=1, workspace_id=1, action_id=1, process=process, process_id=process.pid)
    registry.register(live_run)
    assert live_run.has_process

    assert registry.cancel(1) is True
    returncode = await asyncio.wait_for(process.wait(), timeout=5)
    assert returncode < 0  # killed by signal
    assert not live_run.has_process


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
async def test_cancel_escalates_to_sigkill() -> None:
    registry = ActiveRunRegistry(cancel_grace_seconds=0.2)
    process = await asyncio.create_subprocess_exec(
        "sh", "-c", "trap '' TERM; sleep 30", start_new_session=True
    )
    await asyncio.sleep(0.2)  # let the shell install its trap
    live_run = LiveRun(run_id=1, workspace_id=1, action_id=1, process=process, process_id=process.pid)
    registry.register(live_run)

    registry.cancel(1)
    returncode = await asyncio.wait_for(process.wait(), timeout=5)
    assert returncode == -9


# ---------------------------------------------------------------------------
# Drain
# ---------------------------------------------------------------------------


async def test_wait_until_drained_empty() -> None:
    assert await ActiveRunRegistry().wait_until_drained(timeout=0.1) is True


async def test_wait_until_drained_after_unregister() -> None:
    registry = ActiveRunRegistry()
    registry.register(_live(1))

    async def finish_later() -> None:
        await asyncio.sleep(0.05)
        registry.unregister(1)

    task = asyncio.create_task(finish_later())
    assert await registry.wait_until_drained(timeout=2) is True
    await task


async def test_wait_until_drained_timeout() -> None:
    registry = ActiveRunRegistry()
    registry.register(_live(1))
    assert await registry.wait_until_drained(timeout=0.05) is False

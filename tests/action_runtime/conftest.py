"""Shared fixtures for action-runtime tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from launchdeck.action_runtime.app import app
from launchdeck.action_runtime.db.tables import Action, Workspace
from launchdeck.action_runtime.events import EventEmitter
from launchdeck.action_runtime.managers.actions import create_action
from launchdeck.action_runtime.managers.settings import set_setting, shell_setting_key
from launchdeck.action_runtime.managers.workspaces import create_workspace
from launchdeck.action_runtime.models.api import ActionCreate, WorkspaceCreate
from launchdeck.action_runtime.models.enums import ActionType
from launchdeck.action_runtime.runtime import Runtime, build_runtime, drain
from launchdeck.action_runtime.settings import LaunchdeckSettings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingOpener:
    """Stand-in for ``webbrowser.open`` that records URLs instead of opening them."""

    def __init__(self, result: bool = True) -> None:
        self.urls: list[str] = []
        self.result = result

    def __call__(self, url: str) -> bool:
        self.urls.append(url)
        return self.result


class EventRecorder:
    """Subscribes on creation; ``collect()`` closes the subscription and returns everything seen."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._subscription = emitter.subscribe(max_queue=10_000)
        self.events: list[Any] = []

    async def collect(self) -> list[Any]:
        self._subscription.close()
        async for event in self._subscription:
            self.events.append(event)
        return self.events

    def for_run(self, run_id: int) -> list[Any]:
        return [event for event in self.events if event.run_id == run_id]


async def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not reached in time"
            raise AssertionError(msg)
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds (fails the test after a timeout)."""
    return _wait_until


@pytest.fixture
def url_opener() -> RecordingOpener:
    return RecordingOpener()


@pytest.fixture
def test_settings(database_url: str) -> LaunchdeckSettings:
    return LaunchdeckSettings(
        database_url=database_url,
        cancel_grace_seconds=0.5,
        log_flush_lines=5,
        retention_sweep_interval=0,
    )


@pytest.fixture
async def runtime(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: LaunchdeckSettings,
    url_opener: RecordingOpener,
) -> AsyncIterator[Runtime]:
    runtime = build_runtime(session_factory, test_settings, url_opener=url_opener)
    yield runtime
    await drain(runtime, timeout=0)


@pytest.fixture
def recorder(runtime: Runtime) -> EventRecorder:
    return EventRecorder(runtime.emitter)


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@pytest.fixture
async def posix_shell(db_session: AsyncSession) -> None:
    """Use ``sh`` as the default shell so shell-wrapped commands run anywhere POSIX."""
    await set_setting(db_session, shell_setting_key(), "sh")


@pytest.fixture
async def workspace(db_session: AsyncSession) -> Workspace:
    return await create_workspace(db_session, WorkspaceCreate(name="Main"))


MakeAction = Callable[..., Awaitable[Action]]


@pytest.fixture
def make_action(db_session: AsyncSession, workspace: Workspace) -> MakeAction:
    async def _make(
        action_type: ActionType = ActionType.COMMAND,
        config: dict[str, Any] | None = None,
        *,
        workspace_id: int | None = None,
        name: str = "action",
        **kwargs: Any,
    ) -> Action:
        body = ActionCreate(
            workspace_id=workspace_id or workspace.id,
            name=name,
            action_type=action_type,
            config=config or {},
            **kwargs,
        )
        return await create_action(db_session, body)

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    runtime: Runtime,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with the test database and runtime.

    The app lifespan does NOT run under ``ASGITransport``, so state fields
    are set here.
    """
    app.state.db_engine = None
    app.state.db_session_factory = session_factory
    app.state.runtime = runtime
    app.state.tracker = runtime.tracker
    app.state.registry = runtime.registry
    app.state.emitter = runtime.emitter
    app.state.coordinator = runtime.coordinator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

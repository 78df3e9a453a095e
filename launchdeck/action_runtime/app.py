from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger
from sse_starlette.sse import AppStatus

from launchdeck.action_runtime.db.engine import create_engine, create_session_factory, init_db
from launchdeck.action_runtime.log import setup_logging
from launchdeck.action_runtime.runtime import build_runtime, drain
from launchdeck.action_runtime.settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file)

    logger.info("Launchdeck starting (host={}, port={})", settings.host, settings.port)

    # -- Database --------------------------------------------------------------
    engine = create_engine(settings.database_url)
    await init_db(engine)
    session_factory = create_session_factory(engine)
    _app.state.db_engine = engine
    _app.state.db_session_factory = session_factory
    logger.info("Database: ready ({})", engine.url.render_as_string(hide_password=True))

    # -- Runtime components ----------------------------------------------------
    runtime = build_runtime(session_factory, settings)
    _app.state.runtime = runtime
    _app.state.tracker = runtime.tracker
    _app.state.registry = runtime.registry
    _app.state.emitter = runtime.emitter
    _app.state.coordinator = runtime.coordinator

    # Startup recovery: nothing is live yet, so pending/running rows are orphans.
    await runtime.tracker.recover_orphaned_runs()

    runtime.sweeper.start()

    if settings.auto_launch_on_startup:
        for summary in await runtime.coordinator.launch_auto_actions():
            logger.info("Auto-launch: {}", summary.message)

    # -- SSE -------------------------------------------------------------------
    # Let event streams deliver the final action-completed events on shutdown
    # instead of being cut off immediately.
    AppStatus.disable_automatic_graceful_drain()

    yield

    # -- Shutdown --------------------------------------------------------------
    logger.info("Launchdeck shutting down (active_runs={})", runtime.registry.active_count)

    # 1. Stop accepting launches, wait for live runs, cancel the rest.
    await drain(runtime, timeout=settings.graceful_shutdown_timeout)

    # 2. Signal SSE streams to close.  Must happen AFTER the drain so that
    #    subscribers receive the terminal events.
    AppStatus.should_exit = True

    await runtime.sweeper.stop()

    # Dispose DB engine (closes all pooled connections).
    await engine.dispose()
    logger.info("Database: disposed")


app = FastAPI(title="Launchdeck", lifespan=lifespan)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# -- Routers -----------------------------------------------------------------
from launchdeck.action_runtime.routers.actions import router as actions_router  # noqa: E402
from launchdeck.action_runtime.routers.events import router as events_router  # noqa: E402
from launchdeck.action_runtime.routers.launch import router as launch_router  # noqa: E402
from launchdeck.action_runtime.routers.runs import router as runs_router  # noqa: E402
from launchdeck.action_runtime.routers.settings import router as settings_router  # noqa: E402
from launchdeck.action_runtime.routers.tools import router as tools_router  # noqa: E402
from launchdeck.action_runtime.routers.variables import router as variables_router  # noqa: E402
from launchdeck.action_runtime.routers.workspaces import router as workspaces_router  # noqa: E402

api.include_router(workspaces_router)
api.include_router(actions_router)
api.include_router(tools_router)
api.include_router(variables_router)
api.include_router(settings_router)
api.include_router(launch_router)
api.include_router(runs_router)
api.include_router(events_router)

app.include_router(api)

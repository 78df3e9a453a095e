import asyncio

import click


@click.group()
def main() -> None:
    """Launchdeck - one-click workspace launcher for editors, commands, and URLs."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from LAUNCHDECK_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from LAUNCHDECK_PORT or 8765).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the HTTP API server."""
    import uvicorn

    from launchdeck.action_runtime.settings import LaunchdeckSettings

    settings = LaunchdeckSettings()

    uvicorn.run(
        "launchdeck.action_runtime.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
        # Leave room for live runs to drain (plus SIGTERM -> SIGKILL escalation).
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout + 30,
    )


# ---------------------------------------------------------------------------
# Database management
# ---------------------------------------------------------------------------


@main.command("init-db")
def init_db_command() -> None:
    """Create missing database tables."""
    from launchdeck.action_runtime.db.engine import create_engine, init_db
    from launchdeck.action_runtime.settings import get_settings

    async def _run() -> None:
        engine = create_engine(get_settings().database_url)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.echo("Database initialised.")


# ---------------------------------------------------------------------------
# Launching
# ---------------------------------------------------------------------------


def _parse_vars(values: tuple[str, ...]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            msg = f"Expected KEY=VALUE, got '{item}'"
            raise click.BadParameter(msg, param_hint="--var")
        overrides[key] = value
    return overrides


def _format_event(event) -> str:  # noqa: ANN001
    from launchdeck.action_runtime.models.enums import EventType, LogLevel

    prefix = click.style(f"[run {event.run_id}]", fg="cyan")
    if event.event_type == EventType.ACTION_STARTED:
        pid = f" (pid {event.process_id})" if event.process_id is not None else ""
        return f"{prefix} started{pid}"
    if event.event_type == EventType.ACTION_LOG:
        color = {LogLevel.WARN: "yellow", LogLevel.ERROR: "red"}.get(event.level)
        return f"{prefix} {click.style(event.message, fg=color)}"
    outcome = click.style("succeeded", fg="green") if event.success else click.style("failed", fg="red")
    code = f" (exit {event.exit_code})" if event.exit_code is not None else ""
    return f"{prefix} {outcome}{code}"


@main.command()
@click.argument("workspace_id", type=int)
@click.option("--action", "action_ids", multiple=True, type=int, help="Launch only this action (repeatable).")
@click.option("--sequential", is_flag=True, default=False, help="Start each action after the previous finished.")
@click.option("--var", "variables", multiple=True, help="Variable override KEY=VALUE (repeatable).")
def launch(workspace_id: int, action_ids: tuple[int, ...], sequential: bool, variables: tuple[str, ...]) -> None:
    """Launch a workspace's actions and stream their events until all runs finish."""
    from launchdeck.action_runtime.db.engine import create_engine, create_session_factory, init_db
    from launchdeck.action_runtime.log import setup_logging
    from launchdeck.action_runtime.managers.actions import ActionNotFoundError
    from launchdeck.action_runtime.managers.workspaces import WorkspaceNotFoundError
    from launchdeck.action_runtime.models.enums import EventType
    from launchdeck.action_runtime.runtime import build_runtime, drain
    from launchdeck.action_runtime.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file)
    overrides = _parse_vars(variables)

    async def _run() -> bool:
        engine = create_engine(settings.database_url)
        await init_db(engine)
        runtime = build_runtime(create_session_factory(engine), settings)
        all_succeeded = True

        async def consume(subscription) -> None:  # noqa: ANN001
            nonlocal all_succeeded
            async for event in subscription:
                click.echo(_format_event(event))
                if event.event_type == EventType.ACTION_COMPLETED and not event.success:
                    all_succeeded = False

        try:
            subscription = runtime.emitter.subscribe()
            consumer = asyncio.create_task(consume(subscription))
            try:
                summary = await runtime.coordinator.launch_saved_workspace(
                    workspace_id,
                    action_ids=list(action_ids) or None,
                    overrides=overrides,
                    sequential=sequential,
                )
                await runtime.coordinator.wait_for_idle()
            finally:
                subscription.close()
                await consumer
            click.echo(summary.message)
            return summary.success and all_succeeded
        except (WorkspaceNotFoundError, ActionNotFoundError) as exc:
            raise click.ClickException(f"{type(exc).__name__}: {exc}") from None
        finally:
            await drain(runtime, timeout=0)
            await engine.dispose()

    if not asyncio.run(_run()):
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Run history
# ---------------------------------------------------------------------------


@main.command()
@click.option("--workspace", "workspace_id", type=int, default=None, help="Only runs of this workspace.")
@click.option("--status", default=None, help="Only runs in this status.")
@click.option("--limit", default=20, show_default=True, help="Number of runs to show.")
def runs(workspace_id: int | None, status: str | None, limit: int) -> None:
    """Show recent runs, most recent first."""
    from launchdeck.action_runtime.db.engine import create_engine, create_session_factory, init_db
    from launchdeck.action_runtime.execution.tracker import RunTracker
    from launchdeck.action_runtime.models.enums import RunStatus
    from launchdeck.action_runtime.settings import get_settings

    try:
        status_filter = RunStatus(status) if status else None
    except ValueError:
        raise click.BadParameter(f"unknown status '{status}'", param_hint="--status") from None

    async def _run():  # noqa: ANN202
        engine = create_engine(get_settings().database_url)
        try:
            await init_db(engine)
            tracker = RunTracker(create_session_factory(engine))
            return await tracker.list_runs(workspace_id=workspace_id, status=status_filter, limit=limit)
        finally:
            await engine.dispose()

    records = asyncio.run(_run())
    if not records:
        click.echo("No runs.")
        return
    for run in records:
        exit_code = "-" if run.exit_code is None else str(run.exit_code)
        line = (
            f"{run.id:>6}  ws={run.workspace_id:<4} action={run.action_id:<4} "
            f"{run.status:<10} exit={exit_code:<4} {run.started_at:%Y-%m-%d %H:%M:%S}"
        )
        if run.error_message:
            line += f"  {run.error_message}"
        click.echo(line)


@main.command()
@click.option("--days", type=int, default=None, help="Retention in days (default: log_retention_days setting).")
def prune(days: int | None) -> None:
    """Delete finished runs older than the retention period."""
    from launchdeck.action_runtime.db.engine import create_engine, create_session_factory, init_db
    from launchdeck.action_runtime.execution.tracker import RunTracker
    from launchdeck.action_runtime.managers.settings import load_launch_preferences
    from launchdeck.action_runtime.settings import get_settings

    async def _run() -> tuple[int, int]:
        engine = create_engine(get_settings().database_url)
        try:
            await init_db(engine)
            session_factory = create_session_factory(engine)
            retention = days
            if retention is None:
                async with session_factory() as db:
                    retention = (await load_launch_preferences(db)).log_retention_days
            deleted = await RunTracker(session_factory).prune_runs(retention)
            return deleted, retention
        finally:
            await engine.dispose()

    deleted, retention = asyncio.run(_run())
    click.echo(f"Pruned {deleted} run(s) older than {retention} day(s).")

"""Tests for variable resolution and substitution."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Workspace
from launchdeck.action_runtime.execution.variables import (
    ResolutionWarning,
    merge_scopes,
    resolve_variables,
    substitute,
)
from launchdeck.action_runtime.managers.variables import create_variable
from launchdeck.action_runtime.managers.workspaces import create_workspace
from launchdeck.action_runtime.models.api import VariableCreate, WorkspaceCreate
from launchdeck.action_runtime.models.enums import VariableScope

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _global_var(db: AsyncSession, key: str, value: str, *, enabled: bool = True) -> None:
    await create_variable(db, VariableCreate(scope=VariableScope.GLOBAL, key=key, value=value, enabled=enabled))


async def _workspace_var(db: AsyncSession, workspace_id: int, key: str, value: str, *, enabled: bool = True) -> None:
    await create_variable(
        db,
        VariableCreate(scope=VariableScope.WORKSPACE, workspace_id=workspace_id, key=key, value=value, enabled=enabled),
    )


# ---------------------------------------------------------------------------
# merge_scopes
# ---------------------------------------------------------------------------


def test_merge_scopes_precedence() -> None:
    merged = merge_scopes({"SHELL": "bash", "A": "1"}, {"SHELL": "zsh", "B": "2"}, {"SHELL": "fish"})
    assert merged == {"SHELL": "fish", "A": "1", "B": "2"}


def test_merge_scopes_workspace_over_global() -> None:
    assert merge_scopes({"SHELL": "bash"}, {"SHELL": "zsh"}, None) == {"SHELL": "zsh"}


def test_merge_scopes_empty() -> None:
    assert merge_scopes() == {}


# ---------------------------------------------------------------------------
# substitute
# ---------------------------------------------------------------------------


def test_substitute_replaces_every_occurrence() -> None:
    result = substitute("${DIR}/src:${DIR}/lib", {"DIR": "/home/me"})
    assert result.text == "/home/me/src:/home/me/lib"
    assert result.unresolved == []


def test_substitute_leaves_unknown_verbatim() -> None:
    result = substitute("open ${MISSING} in ${EDITOR}", {"EDITOR": "vim"})
    assert result.text == "open ${MISSING} in vim"
    assert result.unresolved == ["${MISSING}"]


def test_substitute_reports_each_unknown_once() -> None:
    result = substitute("${X} ${X} ${Y}", {})
    assert result.unresolved == ["${X}", "${Y}"]


def test_substitute_inline_default() -> None:
    assert substitute("${PORT:-8080}", {}).text == "8080"
    assert substitute("${PORT:-8080}", {"PORT": "3000"}).text == "3000"
    assert substitute("${EMPTY:-}", {}).text == ""


def test_substitute_ignores_non_placeholders() -> None:
    result = substitute("$HOME and ${} and plain", {"HOME": "x"})
    assert result.text == "$HOME and ${} and plain"
    assert result.unresolved == []


def test_substitute_values_are_not_rescanned() -> None:
    result = substitute("${A}", {"A": "${B}", "B": "nope"})
    assert result.text == "${B}"


def test_resolution_warning_str() -> None:
    assert str(ResolutionWarning("${X}", "args[0]")) == "Unresolved variable ${X} in args[0]"
    assert str(ResolutionWarning("${X}")) == "Unresolved variable ${X}"


# ---------------------------------------------------------------------------
# resolve_variables (database)
# ---------------------------------------------------------------------------


async def test_resolve_shell_precedence(db_session: AsyncSession, workspace: Workspace) -> None:
    """global=bash, workspace=zsh, action=fish."""
    await _global_var(db_session, "SHELL", "bash")
    await _workspace_var(db_session, workspace.id, "SHELL", "zsh")

    assert (await resolve_variables(db_session, workspace.id, {"SHELL": "fish"}))["SHELL"] == "fish"
    assert (await resolve_variables(db_session, workspace.id))["SHELL"] == "zsh"


async def test_resolve_workspace_vars_do_not_leak(db_session: AsyncSession, workspace: Workspace) -> None:
    other = await create_workspace(db_session, WorkspaceCreate(name="Other"))
    await _global_var(db_session, "SHELL", "bash")
    await _workspace_var(db_session, workspace.id, "SHELL", "zsh")

    assert (await resolve_variables(db_session, other.id))["SHELL"] == "bash"


async def test_resolve_ignores_disabled(db_session: AsyncSession, workspace: Workspace) -> None:
    await _global_var(db_session, "SHELL", "bash")
    await _workspace_var(db_session, workspace.id, "SHELL", "zsh", enabled=False)
    await _global_var(db_session, "OFF", "x", enabled=False)

    resolved = await resolve_variables(db_session, workspace.id)
    assert resolved == {"SHELL": "bash"}

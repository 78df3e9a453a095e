"""Unit tests for action template expansion."""

from __future__ import annotations

import pytest

from launchdeck.action_runtime.db.tables import Tool
from launchdeck.action_runtime.execution.expander import (
    DelayInvocation,
    ExpansionError,
    ProcessInvocation,
    UrlInvocation,
    apply_os_overrides,
    expand_action,
    shell_invocation_args,
    shell_script,
)
from launchdeck.action_runtime.managers.settings import LaunchPreferences
from launchdeck.action_runtime.models.enums import ActionType, ToolVariant

PREFS = LaunchPreferences(default_shell="bash", external_ide_path="/opt/ide/bin/ide")


def _tool(variant: ToolVariant, command: str = "", default_args: list[str] | None = None, **kwargs: object) -> Tool:
    return Tool(
        id=kwargs.pop("id", 1),
        name=kwargs.pop("name", "Tool"),
        variant=variant,
        command=command,
        default_args=default_args or [],
        enabled=kwargs.pop("enabled", True),
    )


# ---------------------------------------------------------------------------
# shell_invocation_args
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("shell", "expected"),
    [
        ("bash", ("-c", "echo hi")),
        ("/usr/bin/zsh", ("-c", "echo hi")),
        ("powershell.exe", ("-NoProfile", "-Command", "echo hi")),
        ("C:\\Program Files\\PowerShell\\7\\pwsh.exe", ("-NoProfile", "-Command", "echo hi")),
        ("cmd.exe", ("/C", "echo hi")),
    ],
)
def test_shell_invocation_args(shell: str, expected: tuple[str, ...]) -> None:
    assert shell_invocation_args(shell, "echo hi") == expected


# ---------------------------------------------------------------------------
# command
# ---------------------------------------------------------------------------


def test_command_without_args_runs_through_shell() -> None:
    expanded = expand_action(ActionType.COMMAND, {"command": "echo ${WHO}"}, {"WHO": "world"}, PREFS)
    assert expanded.invocation == ProcessInvocation(
        executable="bash", args=("-c", "echo world"), label="echo world"
    )
    assert expanded.warnings == []


def test_command_with_args_runs_directly() -> None:
    config = {"command": "git", "args": ["-C", "${ROOT}", "status"], "working_directory": "${ROOT}"}
    expanded = expand_action(ActionType.COMMAND, config, {"ROOT": "/src"}, PREFS)
    assert expanded.invocation == ProcessInvocation(
        executable="git", args=("-C", "/src", "status"), working_directory="/src"
    )


def test_command_with_args_and_shell_flag_joins_script() -> None:
    config = {"command": "npm", "args": ["run", "dev"], "shell": True}
    invocation = expand_action(ActionType.COMMAND, config, {}, PREFS).invocation
    assert isinstance(invocation, ProcessInvocation)
    assert invocation.executable == "bash"
    assert invocation.args == ("-c", "npm run dev")


def test_command_shell_args_keep_their_word_boundaries() -> None:
    config = {"command": "ls", "args": ["My Documents", "it's"], "shell": True}
    invocation = expand_action(ActionType.COMMAND, config, {}, PREFS).invocation
    assert invocation.args == ("-c", "ls 'My Documents' 'it'\"'\"'s'")  # type: ignore[union-attr]


def test_command_shell_args_expanded_values_are_quoted() -> None:
    config = {"command": "ls", "args": ["${DIR}"], "shell": True}
    invocation = expand_action(ActionType.COMMAND, config, {"DIR": "/tmp/a b; rm -rf x"}, PREFS).invocation
    assert invocation.args == ("-c", "ls '/tmp/a b; rm -rf x'")  # type: ignore[union-attr]


@pytest.mark.parametrize(
    ("shell", "expected"),
    [
        ("sh", "ls 'My Documents' plain"),
        ("/usr/bin/zsh", "ls 'My Documents' plain"),
        ("cmd.exe", 'ls "My Documents" plain'),
        ("pwsh", 'ls "My Documents" plain'),
    ],
)
def test_shell_script_quotes_per_shell(shell: str, expected: str) -> None:
    assert shell_script(shell, "ls", ["My Documents", "plain"]) == expected


def test_shell_script_keeps_command_verbatim() -> None:
    assert shell_script("bash", "echo one && echo two") == "echo one && echo two"


def test_command_detached_is_tracked_unless_disabled() -> None:
    tracked = expand_action(ActionType.COMMAND, {"command": "server", "detached": True}, {}, PREFS).invocation
    assert tracked.track_exit is True  # type: ignore[union-attr]

    config = {"command": "server", "detached": True, "track_process": False}
    untracked = expand_action(ActionType.COMMAND, config, {}, PREFS).invocation
    assert untracked.track_exit is False  # type: ignore[union-attr]


def test_command_detached_flag() -> None:
    invocation = expand_action(ActionType.COMMAND, {"command": "server", "detached": True}, {}, PREFS).invocation
    assert isinstance(invocation, ProcessInvocation)
    assert invocation.detached is True


def test_command_missing_command() -> None:
    with pytest.raises(ExpansionError, match="Missing command"):
        expand_action(ActionType.COMMAND, {"command": "  "}, {}, PREFS)


def test_command_no_default_shell() -> None:
    with pytest.raises(ExpansionError, match="No default shell"):
        expand_action(ActionType.COMMAND, {"command": "ls"}, {}, LaunchPreferences(default_shell=""))


def test_command_unresolved_placeholder_becomes_warning() -> None:
    expanded = expand_action(ActionType.COMMAND, {"command": "echo", "args": ["${NOPE}"]}, {}, PREFS)
    assert expanded.invocation.args == ("${NOPE}",)  # type: ignore[union-attr]
    assert [str(w) for w in expanded.warnings] == ["Unresolved variable ${NOPE} in args[0]"]


# ---------------------------------------------------------------------------
# url / delay
# ---------------------------------------------------------------------------


def test_url_action() -> None:
    expanded = expand_action(ActionType.URL, {"url": "https://${HOST}/docs"}, {"HOST": "example.com"}, PREFS)
    assert expanded.invocation == UrlInvocation(url="https://example.com/docs")


def test_url_missing() -> None:
    with pytest.raises(ExpansionError, match="Missing url"):
        expand_action(ActionType.URL, {}, {}, PREFS)


def test_delay_action() -> None:
    assert expand_action(ActionType.DELAY, {"duration_ms": 250}, {}, PREFS).invocation == DelayInvocation(250)


@pytest.mark.parametrize("config", [{}, {"duration_ms": -1}, {"duration_ms": "100"}, {"duration_ms": True}])
def test_delay_invalid_duration(config: dict) -> None:
    with pytest.raises(ExpansionError, match="duration_ms"):
        expand_action(ActionType.DELAY, config, {}, PREFS)


def test_unknown_action_type() -> None:
    with pytest.raises(ExpansionError, match="Unknown action type: teleport"):
        expand_action("teleport", {}, {}, PREFS)


# ---------------------------------------------------------------------------
# tool
# ---------------------------------------------------------------------------


def test_editor_tool_is_detached_with_default_args() -> None:
    tool = _tool(ToolVariant.EDITOR_LAUNCH, command="code", default_args=["${ROOT}"], name="VS Code")
    expanded = expand_action(ActionType.TOOL, {"tool_id": 1}, {"ROOT": "/src/app"}, PREFS, tool)
    assert expanded.invocation == ProcessInvocation(
        executable="code", args=("/src/app",), detached=True, label="VS Code", track_exit=False
    )


def test_tool_config_args_override_defaults() -> None:
    tool = _tool(ToolVariant.EDITOR_LAUNCH, command="code", default_args=["."])
    invocation = expand_action(ActionType.TOOL, {"tool_id": 1, "args": ["--new-window"]}, {}, PREFS, tool).invocation
    assert invocation.args == ("--new-window",)  # type: ignore[union-attr]


def test_tool_placeholder_values_shadow_variables() -> None:
    tool = _tool(ToolVariant.COMMAND, command="run", default_args=["${TARGET}"])
    config = {"tool_id": 1, "placeholder_values": {"TARGET": "${ROOT}/build"}}
    expanded = expand_action(ActionType.TOOL, config, {"ROOT": "/src", "TARGET": "ignored"}, PREFS, tool)
    assert expanded.invocation.args == ("/src/build",)  # type: ignore[union-attr]
    assert expanded.invocation.detached is False  # type: ignore[union-attr]
    assert expanded.invocation.track_exit is True  # type: ignore[union-attr]


def test_ide_tool_falls_back_to_external_ide_path() -> None:
    tool = _tool(ToolVariant.IDE_LAUNCH, command="", default_args=["${ROOT}"])
    invocation = expand_action(ActionType.TOOL, {"tool_id": 1}, {"ROOT": "/p"}, PREFS, tool).invocation
    assert invocation == ProcessInvocation(
        executable="/opt/ide/bin/ide", args=("/p",), detached=True, label="Tool", track_exit=False
    )


def test_ide_tool_without_any_path() -> None:
    tool = _tool(ToolVariant.IDE_LAUNCH, command="")
    with pytest.raises(ExpansionError, match="no command or binary path"):
        expand_action(ActionType.TOOL, {"tool_id": 1}, {}, LaunchPreferences(), tool)


def test_url_tool() -> None:
    tool = _tool(ToolVariant.URL, command="https://github.com/${REPO}")
    invocation = expand_action(ActionType.TOOL, {"tool_id": 1}, {"REPO": "me/app"}, PREFS, tool).invocation
    assert invocation == UrlInvocation(url="https://github.com/me/app")


def test_tool_missing() -> None:
    with pytest.raises(ExpansionError, match="Tool 7 not found"):
        expand_action(ActionType.TOOL, {"tool_id": 7}, {}, PREFS, None)
    with pytest.raises(ExpansionError, match="Missing tool_id"):
        expand_action(ActionType.TOOL, {}, {}, PREFS, None)


def test_tool_disabled() -> None:
    tool = _tool(ToolVariant.EDITOR_LAUNCH, command="code", enabled=False, name="VS Code")
    with pytest.raises(ExpansionError, match="'VS Code' is disabled"):
        expand_action(ActionType.TOOL, {"tool_id": 1}, {}, PREFS, tool)


# ---------------------------------------------------------------------------
# os_overrides
# ---------------------------------------------------------------------------


def test_os_overrides_merge_current_platform_only() -> None:
    config = {"command": "open", "args": ["."]}
    overrides = {"windows": {"command": "explorer"}, "linux": {"command": "xdg-open"}}
    assert apply_os_overrides(config, overrides, "linux") == {"command": "xdg-open", "args": ["."]}
    assert apply_os_overrides(config, overrides, "macos") == config
    assert apply_os_overrides(config, None, "linux") == config


def test_os_overrides_must_be_mappings() -> None:
    with pytest.raises(ExpansionError, match="os_overrides.linux"):
        apply_os_overrides({}, {"linux": "xdg-open"}, "linux")

"""Action template expansion -- turns an action configuration, its tool
definition, and the resolved variables into a concrete invocation.

Three invocation shapes come out of expansion:

- ``ProcessInvocation``: executable + args + working directory.  Used for
  ``command`` actions and for ``command`` / ``editor-launch`` /
  ``ide-launch`` tools.  Editor and IDE launches are detached and not
  tracked: the GUI process outlives the run, which completes once the
  spawn succeeded.  Other detached processes are tracked to their exit.
- ``UrlInvocation``: for ``url`` actions and ``url`` tools.
- ``DelayInvocation``: for ``delay`` actions.

Substitution is textual (see ``variables.substitute``).  Placeholders that
stay unresolved become ``ResolutionWarning`` entries on the result.
"""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

from launchdeck.action_runtime.execution.variables import ResolutionWarning, merge_scopes, substitute
from launchdeck.action_runtime.models.enums import ActionType, ToolVariant

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from launchdeck.action_runtime.db.tables import Tool
    from launchdeck.action_runtime.managers.settings import LaunchPreferences

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ExpansionError(ValueError):
    """The action cannot be turned into an invocation (missing command, path, ...)."""


# ---------------------------------------------------------------------------
# Invocation descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProcessInvocation:
    executable: str
    args: tuple[str, ...] = ()
    working_directory: str | None = None
    detached: bool = False
    label: str | None = None
    track_exit: bool = True
    """When False the run completes as soon as the spawn succeeds."""

    def describe(self) -> str:
        return " ".join([self.executable, *self.args])


@dataclass(frozen=True)
class UrlInvocation:
    url: str


@dataclass(frozen=True)
class DelayInvocation:
    duration_ms: int


Invocation = ProcessInvocation | UrlInvocation | DelayInvocation


@dataclass
class ExpandedAction:
    invocation: Invocation
    warnings: list[ResolutionWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Expander:
    """Accumulates warnings while substituting the fields of one action."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self.values = values
        self.warnings: list[ResolutionWarning] = []

    def text(self, value: str, field_name: str) -> str:
        result = substitute(value, self.values)
        self.warnings.extend(ResolutionWarning(p, field_name) for p in result.unresolved)
        return result.text

    def optional(self, value: Any, field_name: str) -> str | None:
        if value is None or value == "":
            return None
        return self.text(str(value), field_name)

    def args(self, values: list[Any], field_name: str = "args") -> tuple[str, ...]:
        return tuple(self.text(str(v), f"{field_name}[{i}]") for i, v in enumerate(values))


def _required_str(config: Mapping[str, Any], key: str, what: str) -> str:
    value = config.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"Missing {key} in {what} config"
        raise ExpansionError(msg)
    return value


def _list_of(config: Mapping[str, Any], key: str) -> list[Any] | None:
    value = config.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        msg = f"{key} must be a list"
        raise ExpansionError(msg)
    return value


def _shell_name(shell: str) -> str:
    return PurePath(shell.replace("\\", "/")).name.lower()


_POWERSHELLS = ("powershell", "powershell.exe", "pwsh", "pwsh.exe")
_CMD_SHELLS = ("cmd", "cmd.exe")


def shell_invocation_args(shell: str, command: str) -> tuple[str, ...]:
    """Arguments that make *shell* run *command* as a single script."""
    name = _shell_name(shell)
    if name in _POWERSHELLS:
        return ("-NoProfile", "-Command", command)
    if name in _CMD_SHELLS:
        return ("/C", command)
    return ("-c", command)


def shell_script(shell: str, command: str, args: Sequence[str] = ()) -> str:
    """Append *args* to *command*, quoted so that each one stays a single word for *shell*.

    *command* itself is a script fragment and is kept verbatim.
    """
    if not args:
        return command
    quoted = subprocess.list2cmdline(args) if _shell_name(shell) in _POWERSHELLS + _CMD_SHELLS else shlex.join(args)
    return f"{command} {quoted}"


def apply_os_overrides(
    config: Mapping[str, Any],
    overrides: Mapping[str, Any] | None,
    platform: str,
) -> dict[str, Any]:
    """Shallow-merge the override block for *platform* (``windows``, ``macos``, ``linux``) over *config*."""
    merged = dict(config)
    block = (overrides or {}).get(platform)
    if block is None:
        return merged
    if not isinstance(block, dict):
        msg = f"os_overrides.{platform} must be a mapping"
        raise ExpansionError(msg)
    merged.update(block)
    return merged


# ---------------------------------------------------------------------------
# Per-type expansion
# ---------------------------------------------------------------------------


def _expand_command(config: Mapping[str, Any], exp: _Expander, prefs: LaunchPreferences) -> ProcessInvocation:
    command = exp.text(_required_str(config, "command", "command action"), "command")
    raw_args = _list_of(config, "args")
    working_directory = exp.optional(config.get("working_directory"), "working_directory")
    detached = bool(config.get("detached", False))
    track_exit = bool(config.get("track_process", True))

    if raw_args and not config.get("shell", False):
        return ProcessInvocation(
            executable=command,
            args=exp.args(raw_args),
            working_directory=working_directory,
            detached=detached,
            track_exit=track_exit,
        )

    shell = prefs.default_shell
    if not shell.strip():
        msg = "No default shell configured for this platform"
        raise ExpansionError(msg)
    script = shell_script(shell, command, exp.args(raw_args or []))
    return ProcessInvocation(
        executable=shell,
        args=shell_invocation_args(shell, script),
        working_directory=working_directory,
        detached=detached,
        label=script,
        track_exit=track_exit,
    )


def _expand_url(config: Mapping[str, Any], exp: _Expander) -> UrlInvocation:
    return UrlInvocation(url=exp.text(_required_str(config, "url", "URL action"), "url"))


def _expand_delay(config: Mapping[str, Any]) -> DelayInvocation:
    duration = config.get("duration_ms")
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        msg = "Missing duration_ms in delay action config"
        raise ExpansionError(msg)
    return DelayInvocation(duration_ms=duration)


def _expand_tool(
    config: Mapping[str, Any],
    values: Mapping[str, str],
    prefs: LaunchPreferences,
    tool: Tool | None,
) -> ExpandedAction:
    if tool is None:
        tool_id = config.get("tool_id")
        msg = f"Tool {tool_id} not found" if tool_id is not None else "Missing tool_id in tool action config"
        raise ExpansionError(msg)
    if not tool.enabled:
        msg = f"Tool '{tool.name}' is disabled"
        raise ExpansionError(msg)

    # Placeholder values are themselves templates over the resolved variables.
    placeholder_exp = _Expander(values)
    placeholders = config.get("placeholder_values") or {}
    if not isinstance(placeholders, dict):
        msg = "placeholder_values must be a mapping"
        raise ExpansionError(msg)
    resolved_placeholders = {
        str(name): placeholder_exp.text(str(value), f"placeholder_values.{name}") for name, value in placeholders.items()
    }

    exp = _Expander(merge_scopes(values, resolved_placeholders))
    exp.warnings.extend(placeholder_exp.warnings)
    variant = ToolVariant(tool.variant)

    if variant == ToolVariant.URL:
        url = exp.text(tool.command or "", "tool.command")
        if not url.strip():
            msg = f"Tool '{tool.name}' has no URL template"
            raise ExpansionError(msg)
        return ExpandedAction(invocation=UrlInvocation(url=url), warnings=exp.warnings)

    executable = exp.text(tool.command or "", "tool.command")
    if not executable.strip() and variant == ToolVariant.IDE_LAUNCH:
        executable = exp.text(prefs.external_ide_path, "external_ide_path")
    if not executable.strip():
        msg = f"Tool '{tool.name}' has no command or binary path configured"
        raise ExpansionError(msg)

    override_args = _list_of(config, "args")
    raw_args = override_args if override_args is not None else list(tool.default_args or [])
    invocation = ProcessInvocation(
        executable=executable,
        args=exp.args(raw_args),
        working_directory=exp.optional(config.get("working_directory"), "working_directory"),
        detached=variant != ToolVariant.COMMAND or bool(config.get("detached", False)),
        label=tool.name,
        track_exit=variant == ToolVariant.COMMAND,
    )
    return ExpandedAction(invocation=invocation, warnings=exp.warnings)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def expand_action(
    action_type: ActionType | str,
    config: Mapping[str, Any],
    variables: Mapping[str, str],
    prefs: LaunchPreferences,
    tool: Tool | None = None,
) -> ExpandedAction:
    """Expand one action into a concrete invocation.

    Raises
    ------
    ExpansionError:
        The action type is unknown, or a field the variant requires
        (command, URL, binary path, duration, tool) is missing or empty.
    """
    try:
        kind = ActionType(action_type)
    except ValueError:
        msg = f"Unknown action type: {action_type}"
        raise ExpansionError(msg) from None

    if kind == ActionType.TOOL:
        return _expand_tool(config, variables, prefs, tool)

    exp = _Expander(variables)
    if kind == ActionType.COMMAND:
        invocation: Invocation = _expand_command(config, exp, prefs)
    elif kind == ActionType.URL:
        invocation = _expand_url(config, exp)
    else:
        invocation = _expand_delay(config)
    return ExpandedAction(invocation=invocation, warnings=exp.warnings)

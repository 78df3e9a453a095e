"""Variable resolution -- merges global, workspace, and action-level
variables into the substitution table used at launch time.

Resolution order (highest priority first):

1. Action-level overrides carried by the launch request.
2. Enabled workspace-scope variables of the action's workspace.
3. Enabled global variables.

Placeholders use ``${KEY}`` syntax.  ``${KEY:-fallback}`` provides an inline
default used when ``KEY`` resolves in no scope.  A placeholder with neither
a value nor a default is left verbatim and reported as a
``ResolutionWarning``; it never blocks a launch.

Resolved values are never written back into the stored action.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select

from launchdeck.action_runtime.db.tables import Variable as VariableRow
from launchdeck.action_runtime.models.enums import VariableScope

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

PLACEHOLDER_RE = re.compile(r"\$\{(?P<key>[A-Za-z_][A-Za-z0-9_.\-]*)(?::-(?P<default>[^}]*))?\}")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolutionWarning:
    """A placeholder that resolved in no scope and had no inline default."""

    placeholder: str
    field: str | None = None

    def __str__(self) -> str:
        where = f" in {self.field}" if self.field else ""
        return f"Unresolved variable {self.placeholder}{where}"


@dataclass
class Substitution:
    text: str
    unresolved: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def merge_scopes(
    global_vars: Mapping[str, str] | None = None,
    workspace_vars: Mapping[str, str] | None = None,
    action_vars: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Flatten the three scopes; later scopes shadow earlier ones."""
    merged: dict[str, str] = {}
    for scope in (global_vars, workspace_vars, action_vars):
        if scope:
            merged.update(scope)
    return merged


def substitute(text: str, values: Mapping[str, str]) -> Substitution:
    """Replace every recognised placeholder in *text*.

    Unknown placeholders without a default stay as-is and are listed in
    ``unresolved`` (each placeholder once, in order of first appearance).
    """
    unresolved: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        key = match.group("key")
        if key in values:
            return values[key]
        default = match.group("default")
        if default is not None:
            return default
        placeholder = match.group(0)
        if placeholder not in unresolved:
            unresolved.append(placeholder)
        return placeholder

    return Substitution(text=PLACEHOLDER_RE.sub(_replace, text), unresolved=unresolved)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def load_scope(
    db: AsyncSession,
    scope: VariableScope,
    workspace_id: int | None = None,
) -> dict[str, str]:
    """Load the enabled variables of one scope as a ``key -> value`` mapping."""
    stmt = select(VariableRow.key, VariableRow.value).where(
        VariableRow.scope == scope,
        VariableRow.enabled.is_(True),
    )
    if scope == VariableScope.WORKSPACE:
        stmt = stmt.where(VariableRow.workspace_id == workspace_id)
    result = await db.execute(stmt)
    return {key: value for key, value in result.all()}


async def resolve_variables(
    db: AsyncSession,
    workspace_id: int,
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the final substitution table for an action of *workspace_id*.

    No side effects; missing keys are not an error here (see ``substitute``).
    """
    global_vars = await load_scope(db, VariableScope.GLOBAL)
    workspace_vars = await load_scope(db, VariableScope.WORKSPACE, workspace_id)
    return merge_scopes(global_vars, workspace_vars, overrides)

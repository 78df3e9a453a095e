"""Variable CRUD operations.

Keys are unique per scope: once globally, and once per workspace for
workspace variables.  The database constraint alone cannot enforce global
uniqueness (``NULL`` workspace IDs never collide), so it is checked here.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from launchdeck.action_runtime.db.tables import Variable
from launchdeck.action_runtime.managers.workspaces import get_workspace
from launchdeck.action_runtime.models.api import VariableCreate, VariableUpdate
from launchdeck.action_runtime.models.enums import VariableScope


class DuplicateVariableError(ValueError):
    """Raised when the key already exists in the same scope."""


class VariableNotFoundError(LookupError):
    """Raised when a variable is not found."""


class InvalidVariableScopeError(ValueError):
    """Raised when ``workspace_id`` does not match the scope."""


async def _ensure_unique(
    db: AsyncSession,
    scope: str,
    workspace_id: int | None,
    key: str,
    exclude_id: int | None = None,
) -> None:
    stmt = select(Variable.id).where(Variable.scope == scope, Variable.key == key)
    if workspace_id is None:
        stmt = stmt.where(Variable.workspace_id.is_(None))
    else:
        stmt = stmt.where(Variable.workspace_id == workspace_id)
    if exclude_id is not None:
        stmt = stmt.where(Variable.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise DuplicateVariableError(key)


async def create_variable(db: AsyncSession, body: VariableCreate) -> Variable:
    """Create a variable.

    Raises ``InvalidVariableScopeError`` when a global variable names a
    workspace (or a workspace variable does not), ``WorkspaceNotFoundError``
    for an unknown workspace, and ``DuplicateVariableError`` on key clash.
    """
    if body.scope == VariableScope.GLOBAL and body.workspace_id is not None:
        msg = "Global variables cannot belong to a workspace"
        raise InvalidVariableScopeError(msg)
    if body.scope == VariableScope.WORKSPACE:
        if body.workspace_id is None:
            msg = "Workspace variables require a workspace_id"
            raise InvalidVariableScopeError(msg)
        await get_workspace(db, body.workspace_id)

    await _ensure_unique(db, body.scope, body.workspace_id, body.key)

    variable = Variable(**body.model_dump())
    db.add(variable)
    await db.commit()
    await db.refresh(variable)
    return variable


async def list_variables(
    db: AsyncSession,
    *,
    scope: VariableScope | None = None,
    workspace_id: int | None = None,
) -> list[Variable]:
    stmt = select(Variable).order_by(Variable.scope, Variable.key)
    if scope is not None:
        stmt = stmt.where(Variable.scope == scope)
    if workspace_id is not None:
        stmt = stmt.where(Variable.workspace_id == workspace_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_variable(db: AsyncSession, variable_id: int) -> Variable:
    variable = await db.get(Variable, variable_id)
    if variable is None:
        raise VariableNotFoundError(variable_id)
    return variable


async def update_variable(db: AsyncSession, variable_id: int, body: VariableUpdate) -> Variable:
    variable = await get_variable(db, variable_id)

    changes = body.model_dump(exclude_unset=True)
    if not changes:
        return variable

    if "key" in changes and changes["key"] != variable.key:
        await _ensure_unique(db, variable.scope, variable.workspace_id, changes["key"], exclude_id=variable.id)

    for key, value in changes.items():
        setattr(variable, key, value)

    await db.commit()
    await db.refresh(variable)
    return variable


async def delete_variable(db: AsyncSession, variable_id: int) -> None:
    variable = await get_variable(db, variable_id)
    await db.delete(variable)
    await db.commit()

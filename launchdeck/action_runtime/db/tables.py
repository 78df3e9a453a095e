"""SQLAlchemy ORM models.

These are the single source of truth for the database schema.  Tables are
created idempotently at startup (``init_db``); there is no migration layer.

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Text, UniqueConstraint, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class TimestampTZ(TypeDecorator):
    """Timezone-aware timestamp for all datetime columns.

    SQLite does not keep the offset, so values are written as UTC and read
    back with UTC attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> Any:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Declarative base with naming convention for constraints."""

    pass


# Apply naming convention to the metadata for deterministic constraint names.
Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str]
    description: Mapped[str | None] = mapped_column(Text)
    root_path: Mapped[str | None]
    icon: Mapped[str | None]
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class Tool(Base):
    __tablename__ = "tools"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str]
    icon: Mapped[str | None]
    description: Mapped[str | None] = mapped_column(Text)
    variant: Mapped[str]
    command: Mapped[str] = mapped_column(Text, server_default="")
    default_args: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    enabled: Mapped[bool] = mapped_column(default=True, server_default="1")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class Action(Base):
    __tablename__ = "actions"
    __table_args__ = (Index("ix_actions_workspace_id", "workspace_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(
        ForeignKey("workspaces.id", name="fk_actions_workspace_id", ondelete="CASCADE"),
    )
    name: Mapped[str]
    action_type: Mapped[str]
    tool_id: Mapped[int | None] = mapped_column(
        ForeignKey("tools.id", name="fk_actions_tool_id", ondelete="SET NULL"),
    )
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    detached: Mapped[bool] = mapped_column(default=False, server_default="0")
    track_process: Mapped[bool] = mapped_column(default=True, server_default="1")
    timeout_seconds: Mapped[int | None]
    auto_launch: Mapped[bool] = mapped_column(default=False, server_default="0")
    os_overrides: Mapped[dict | None] = mapped_column(JSON)
    order_index: Mapped[int] = mapped_column(default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class Variable(Base):
    __tablename__ = "variables"
    __table_args__ = (
        UniqueConstraint("scope", "workspace_id", "key", name="uq_variables_scope_workspace_key"),
        Index("ix_variables_workspace_id", "workspace_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    scope: Mapped[str]
    workspace_id: Mapped[int | None] = mapped_column(
        ForeignKey("workspaces.id", name="fk_variables_workspace_id", ondelete="CASCADE"),
    )
    key: Mapped[str]
    value: Mapped[str] = mapped_column(Text, server_default="")
    enabled: Mapped[bool] = mapped_column(default=True, server_default="1")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class Run(Base):
    __tablename__ = "runs"
    __table_args__ = (
        Index("ix_runs_workspace_id", "workspace_id"),
        Index("ix_runs_action_id", "action_id"),
        Index("ix_runs_status", "status"),
        Index("ix_runs_started_at", "started_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(
        ForeignKey("workspaces.id", name="fk_runs_workspace_id", ondelete="CASCADE"),
    )
    action_id: Mapped[int] = mapped_column(
        ForeignKey("actions.id", name="fk_runs_action_id", ondelete="CASCADE"),
    )
    status: Mapped[str] = mapped_column(server_default="pending")
    process_id: Mapped[int | None]
    started_at: Mapped[datetime] = mapped_column(TimestampTZ)
    ended_at: Mapped[datetime | None] = mapped_column(TimestampTZ)
    exit_code: Mapped[int | None]
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())


class RunLog(Base):
    __tablename__ = "run_logs"
    __table_args__ = (Index("ix_run_logs_run_id", "run_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("runs.id", name="fk_run_logs_run_id", ondelete="CASCADE"),
    )
    seq: Mapped[int]
    level: Mapped[str]
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())


class Setting(Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())

"""SQLModel ORM tables for task quorum storage."""

from __future__ import annotations

from sqlalchemy import BigInteger, Column, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("ix_tasks_status_created", "status", "created_at_ms", "task_id"),)

    task_id: int | None = Field(default=None, primary_key=True)
    status: str = Field(index=True)
    created_at_ms: int = Field(sa_column=Column(BigInteger, nullable=False))
    input: str = Field(sa_column=Column(Text, nullable=False))
    response: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    finalized_at_ms: int | None = Field(
        default=None,
        sa_column=Column(BigInteger, nullable=True),
    )


class TaskResponseRow(SQLModel, table=True):
    __tablename__ = "task_responses"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "task_id",
            "operator_id",
            name="uq_task_responses_task_operator",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    operator_id: str = Field(index=True)
    response: str = Field(sa_column=Column(Text, nullable=False))
    signature: str = Field(sa_column=Column(Text, nullable=False))
    created_at_ms: int = Field(sa_column=Column(BigInteger, nullable=False))


class TaskEventRow(SQLModel, table=True):
    __tablename__ = "task_events"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(
            ForeignKey("tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at_ms: int = Field(sa_column=Column(BigInteger, nullable=False))


class OperatorRow(SQLModel, table=True):
    __tablename__ = "operators"  # type: ignore[bad-override]

    operator_id: str = Field(primary_key=True)
    public_key: str = Field(sa_column=Column(Text, nullable=False))
    active: bool = Field(default=True, index=True)
    registered_at_ms: int = Field(sa_column=Column(BigInteger, nullable=False))

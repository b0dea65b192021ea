"""Durable task store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from sqlalchemy import BigInteger, String, Text, and_, func, literal
from sqlalchemy import insert as sa_insert
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from task_quorum.quorum.models import (
    ResponseSubmission,
    TaskDetails,
    TaskEventView,
    TaskResponseView,
    TaskStatus,
    TaskView,
)
from task_quorum.storage.alembic_runner import upgrade_head
from task_quorum.storage.common import build_sqlite_engine, now_ms
from task_quorum.storage.sqlmodel_models import TaskEventRow, TaskResponseRow, TaskRow


class ResponseInsertStatus(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    TASK_NOT_READY = "task_not_ready"


@dataclass(slots=True)
class ResponseInsertResult:
    """Outcome of one insert-if-absent attempt."""

    status: ResponseInsertStatus
    response: TaskResponseView | None = None


class TaskRepository:
    """Task and response persistence facade."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create_task(self, *, input_payload: str) -> TaskView:
        """Create a READY task."""

        now = now_ms()
        with Session(self.engine) as session:
            row = TaskRow(
                status=TaskStatus.READY.value,
                created_at_ms=now,
                input=input_payload,
            )
            session.add(row)
            session.flush()
            assert row.task_id is not None
            self._add_event(
                session=session,
                task_id=row.task_id,
                event_type="created",
                status_from=None,
                status_to=TaskStatus.READY,
                details={},
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get_task(self, task_id: int) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.get(TaskRow, task_id)
            return _to_task_view(row) if row is not None else None

    def list_tasks(self, *, status: TaskStatus | None = None, limit: int = 50) -> list[TaskView]:
        """List recent tasks, newest first, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(TaskRow)
            if status is not None:
                statement = statement.where(TaskRow.status == status.value)
            statement = statement.order_by(
                col(TaskRow.created_at_ms).desc(),
                col(TaskRow.task_id).desc(),
            ).limit(limit)
            rows = session.exec(statement).all()
        return [_to_task_view(row) for row in rows]

    def list_ready_task_ids(self, *, limit: int) -> list[int]:
        """READY task ids, oldest first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow.task_id)
                .where(TaskRow.status == TaskStatus.READY.value)
                .order_by(col(TaskRow.created_at_ms).asc(), col(TaskRow.task_id).asc())
                .limit(limit),
            ).all()
        return [task_id for task_id in rows if task_id is not None]

    def fetch_next_ready_task(self, *, operator_id: str) -> TaskView | None:
        """Oldest READY task the operator has not answered yet."""

        with Session(self.engine) as session:
            row = session.exec(
                select(TaskRow)
                .outerjoin(
                    TaskResponseRow,
                    and_(
                        col(TaskResponseRow.task_id) == col(TaskRow.task_id),
                        col(TaskResponseRow.operator_id) == operator_id,
                    ),
                )
                .where(
                    TaskRow.status == TaskStatus.READY.value,
                    col(TaskResponseRow.id).is_(None),
                )
                .order_by(col(TaskRow.created_at_ms).asc(), col(TaskRow.task_id).asc())
                .limit(1),
            ).first()
            return _to_task_view(row) if row is not None else None

    def insert_response_if_absent(self, submission: ResponseSubmission) -> ResponseInsertResult:
        """Store a response unless the operator already answered or the task left READY.

        The READY check and the insert run as one statement, and the unique
        ``(task_id, operator_id)`` constraint arbitrates concurrent inserts.
        """

        now = now_ms()
        source = sa_select(
            col(TaskRow.task_id),
            literal(submission.operator_id, String()),
            literal(submission.response, Text()),
            literal(submission.signature, Text()),
            literal(now, BigInteger()),
        ).where(
            col(TaskRow.task_id) == submission.task_id,
            col(TaskRow.status) == TaskStatus.READY.value,
        )
        statement = sa_insert(TaskResponseRow).from_select(
            ["task_id", "operator_id", "response", "signature", "created_at_ms"],
            source,
        )
        with Session(self.engine) as session:
            try:
                result = session.exec(statement)  # type: ignore[call-overload]
            except IntegrityError:
                session.rollback()
                return ResponseInsertResult(status=ResponseInsertStatus.DUPLICATE)
            if result.rowcount != 1:
                session.rollback()
                return ResponseInsertResult(status=ResponseInsertStatus.TASK_NOT_READY)

            row = session.exec(
                select(TaskResponseRow).where(
                    TaskResponseRow.task_id == submission.task_id,
                    TaskResponseRow.operator_id == submission.operator_id,
                ),
            ).one()
            self._add_event(
                session=session,
                task_id=submission.task_id,
                event_type="response_admitted",
                status_from=TaskStatus.READY,
                status_to=TaskStatus.READY,
                details={"operator_id": submission.operator_id, "response_id": row.id},
            )
            session.commit()
            return ResponseInsertResult(
                status=ResponseInsertStatus.INSERTED,
                response=_to_response_view(row),
            )

    def has_response(self, *, task_id: int, operator_id: str) -> bool:
        """Whether the operator already has a stored response for the task."""

        with Session(self.engine) as session:
            row = session.exec(
                select(TaskResponseRow.id).where(
                    TaskResponseRow.task_id == task_id,
                    TaskResponseRow.operator_id == operator_id,
                ),
            ).first()
        return row is not None

    def count_responses(self, task_id: int) -> int:
        with Session(self.engine) as session:
            return session.exec(
                select(func.count())
                .select_from(TaskResponseRow)
                .where(TaskResponseRow.task_id == task_id),
            ).one()

    def list_responses(self, task_id: int) -> list[TaskResponseView]:
        """Responses for one task in admission order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskResponseRow)
                .where(TaskResponseRow.task_id == task_id)
                .order_by(col(TaskResponseRow.created_at_ms).asc(), col(TaskResponseRow.id).asc()),
            ).all()
        return [_to_response_view(row) for row in rows]

    def finalize_task(
        self,
        *,
        task_id: int,
        status: TaskStatus,
        response: str | None,
        details: dict[str, object] | None = None,
    ) -> bool:
        """Move a READY task to a terminal status. False if it already left READY."""

        if not status.is_terminal:
            raise ValueError(f"Unsupported final status: {status}")
        if (status is TaskStatus.COMPLETED) != (response is not None):
            raise ValueError("A response is stored only for COMPLETED tasks.")

        now = now_ms()
        with Session(self.engine) as session:
            result = session.exec(  # type: ignore[call-overload]
                sa_update(TaskRow)
                .where(
                    col(TaskRow.task_id) == task_id,
                    col(TaskRow.status) == TaskStatus.READY.value,
                )
                .values(
                    status=status.value,
                    response=response,
                    finalized_at_ms=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=task_id,
                event_type=status.value.lower(),
                status_from=TaskStatus.READY,
                status_to=status,
                details=details or {},
            )
            session.commit()
            return True

    def get_task_details(self, *, task_id: int) -> TaskDetails | None:
        """Return task with responses and event stream."""

        with Session(self.engine) as session:
            task = session.get(TaskRow, task_id)
            if task is None:
                return None
            task_view = _to_task_view(task)
            event_rows = session.exec(
                select(TaskEventRow)
                .where(TaskEventRow.task_id == task_id)
                .order_by(col(TaskEventRow.created_at_ms).asc(), col(TaskEventRow.id).asc()),
            ).all()

        events: list[TaskEventView] = []
        for row in event_rows:
            details = {}
            if row.details_json:
                parsed = json.loads(row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                TaskEventView(
                    event_id=row.id or 0,
                    task_id=row.task_id,
                    event_type=row.event_type,
                    status_from=TaskStatus(row.status_from) if row.status_from else None,
                    status_to=TaskStatus(row.status_to) if row.status_to else None,
                    created_at_ms=row.created_at_ms,
                    details=details,
                ),
            )

        return TaskDetails(
            task=task_view,
            responses=self.list_responses(task_id),
            events=events,
        )

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: int,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TaskEventRow(
                task_id=task_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at_ms=now_ms(),
            ),
        )


def _to_task_view(row: TaskRow) -> TaskView:
    assert row.task_id is not None
    return TaskView(
        task_id=row.task_id,
        status=TaskStatus(row.status),
        created_at_ms=row.created_at_ms,
        input=row.input,
        response=row.response,
        finalized_at_ms=row.finalized_at_ms,
    )


def _to_response_view(row: TaskResponseRow) -> TaskResponseView:
    return TaskResponseView(
        response_id=row.id or 0,
        task_id=row.task_id,
        operator_id=row.operator_id,
        response=row.response,
        signature=row.signature,
        created_at_ms=row.created_at_ms,
    )

"""Domain models for the task lifecycle and quorum decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Durable task lifecycle states."""

    READY = "READY"
    COMPLETED = "COMPLETED"
    CONSENSUS_NOT_REACHED = "CONSENSUS_NOT_REACHED"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.READY


@dataclass(slots=True)
class TaskView:
    """Readable task view for dispatch, CLI and engine logic."""

    task_id: int
    status: TaskStatus
    created_at_ms: int
    input: str
    response: str | None = None
    finalized_at_ms: int | None = None


@dataclass(slots=True)
class TaskResponseView:
    """One admitted operator response."""

    response_id: int
    task_id: int
    operator_id: str
    response: str
    signature: str
    created_at_ms: int


@dataclass(slots=True)
class TaskEventView:
    """Task event entry for audit trail."""

    event_id: int
    task_id: int
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at_ms: int
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TaskDetails:
    """Task with its responses and event stream."""

    task: TaskView
    responses: list[TaskResponseView]
    events: list[TaskEventView]


@dataclass(slots=True)
class OperatorView:
    """Registered operator record."""

    operator_id: str
    public_key: str
    active: bool
    registered_at_ms: int


@dataclass(slots=True)
class ResponseSubmission:
    """Signed answer submitted by an operator for one task."""

    task_id: int
    operator_id: str
    response: str
    signature: str


@dataclass(frozen=True, slots=True)
class Finalized:
    """Content quorum reached; the task is now COMPLETED."""

    task_id: int
    response: str


@dataclass(frozen=True, slots=True)
class Deferred:
    """Participation quorum not reached yet; nothing changed."""

    task_id: int
    responses_count: int
    operators_count: int
    quorum: int

    @property
    def outstanding(self) -> int:
        return max(0, self.quorum - self.responses_count)


@dataclass(frozen=True, slots=True)
class Undecidable:
    """Participation reached but responses disagree; task is CONSENSUS_NOT_REACHED."""

    task_id: int
    responses_count: int
    largest_group: int


@dataclass(frozen=True, slots=True)
class AlreadyFinalized:
    """Task had already left READY; evaluation did nothing."""

    task_id: int
    status: TaskStatus


EvaluationOutcome = Finalized | Deferred | Undecidable | AlreadyFinalized


@dataclass(slots=True)
class AdmissionResult:
    """Stored response plus the evaluation it triggered.

    ``evaluation`` is None when evaluation could not complete (for example the
    operator directory timed out); the response stays admitted regardless.
    """

    response: TaskResponseView
    evaluation: EvaluationOutcome | None

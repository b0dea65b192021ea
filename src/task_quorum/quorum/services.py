"""Use-case services: task intake, dispatch, response admission and sweeps."""

from __future__ import annotations

import json
import logging
import random

from sqlalchemy.exc import SQLAlchemyError

from task_quorum.quorum.collaborators import ResponseAuthenticator
from task_quorum.quorum.engine import QuorumEngine
from task_quorum.quorum.errors import (
    CollaboratorError,
    DuplicateResponseError,
    InvalidSignatureError,
    TaskAlreadyFinalizedError,
    TaskNotFoundError,
    UnauthorizedOperatorError,
)
from task_quorum.quorum.models import (
    AdmissionResult,
    EvaluationOutcome,
    ResponseSubmission,
    TaskView,
)
from task_quorum.quorum.repository import ResponseInsertStatus, TaskRepository

logger = logging.getLogger(__name__)


class TaskQuorumService:
    """Coordinates authentication, storage and quorum evaluation."""

    def __init__(
        self,
        *,
        repository: TaskRepository,
        engine: QuorumEngine,
        authenticator: ResponseAuthenticator,
    ) -> None:
        self.repository = repository
        self.engine = engine
        self.directory = engine.directory
        self.authenticator = authenticator

    def create_task(self, input_payload: str) -> TaskView:
        task = self.repository.create_task(input_payload=input_payload)
        logger.info("Added task with id %s", task.task_id)
        return task

    def generate_demo_tasks(
        self,
        *,
        count: int,
        points: int = 10,
        rng: random.Random | None = None,
    ) -> list[TaskView]:
        """Create tasks whose input is a random travelling-salesman point set."""

        rng = rng or random.Random()
        tasks = []
        for _ in range(count):
            coordinates = [[rng.randrange(100), rng.randrange(100)] for _ in range(points)]
            tasks.append(self.create_task(json.dumps(coordinates, separators=(",", ":"))))
        return tasks

    def get_next_ready_task(self, operator_id: str) -> TaskView | None:
        return self.repository.fetch_next_ready_task(operator_id=operator_id)

    def admit_response(self, submission: ResponseSubmission) -> AdmissionResult:
        """Authenticate and store one operator response, then re-evaluate the task.

        Raises an :class:`AdmissionError` subclass for client errors and a
        :class:`CollaboratorError` when authentication could not complete. In
        both cases nothing is written.
        """

        task_id = submission.task_id
        operator_id = submission.operator_id
        logger.info("[Task %s] Received response from Operator #%s", task_id, operator_id)

        task = self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(message=f"Task with ID {task_id} not found")
        if task.status.is_terminal:
            self._raise_if_duplicate(task_id, operator_id)
            raise TaskAlreadyFinalizedError(
                message=f"Task {task_id} is already finalized as {task.status.value}",
            )

        if not self.directory.is_eligible(operator_id):
            raise UnauthorizedOperatorError(
                message=f"Operator #{operator_id} is not an eligible operator",
            )
        logger.info("[Task %s] Operator #%s is verified", task_id, operator_id)

        if not self.authenticator.verify(
            task_id,
            submission.response,
            operator_id,
            submission.signature,
        ):
            raise InvalidSignatureError(message="Signature verification failed")
        logger.info("[Task %s] Signature is verified", task_id)

        inserted = self.repository.insert_response_if_absent(submission)
        if inserted.status is ResponseInsertStatus.DUPLICATE:
            raise _duplicate_error(task_id, operator_id)
        if inserted.status is ResponseInsertStatus.TASK_NOT_READY:
            self._raise_if_duplicate(task_id, operator_id)
            raise TaskAlreadyFinalizedError(
                message=f"Task {task_id} was finalized before the response was stored",
            )
        assert inserted.response is not None
        logger.info(
            "[Task %s] Response from Operator #%s stored in database",
            task_id,
            operator_id,
        )

        evaluation: EvaluationOutcome | None
        try:
            evaluation = self.engine.evaluate_task(task_id)
        except (CollaboratorError, SQLAlchemyError):
            logger.warning(
                "[Task %s] Evaluation after admission failed; response stays admitted",
                task_id,
                exc_info=True,
            )
            evaluation = None
        return AdmissionResult(response=inserted.response, evaluation=evaluation)

    def evaluate_task(self, task_id: int) -> EvaluationOutcome:
        return self.engine.evaluate_task(task_id)

    def sweep_ready_tasks(self, *, limit: int) -> list[EvaluationOutcome]:
        """Re-evaluate READY tasks oldest first, for example after operators left."""

        outcomes = [
            self.engine.evaluate_task(task_id)
            for task_id in self.repository.list_ready_task_ids(limit=limit)
        ]
        logger.info("Sweep evaluated %d ready task(s)", len(outcomes))
        return outcomes

    def _raise_if_duplicate(self, task_id: int, operator_id: str) -> None:
        # A repeat submission stays a duplicate after the task is finalized.
        if self.repository.has_response(task_id=task_id, operator_id=operator_id):
            raise _duplicate_error(task_id, operator_id)


def _duplicate_error(task_id: int, operator_id: str) -> DuplicateResponseError:
    return DuplicateResponseError(
        message=f"Operator #{operator_id} already sent a response for task {task_id}",
    )

"""Quorum engine: decides when and how a task is finalized."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from task_quorum.quorum.collaborators import OperatorDirectory
from task_quorum.quorum.decision import check_content, check_participation
from task_quorum.quorum.errors import TaskNotFoundError
from task_quorum.quorum.models import (
    AlreadyFinalized,
    Deferred,
    EvaluationOutcome,
    Finalized,
    TaskStatus,
    Undecidable,
)
from task_quorum.quorum.repository import TaskRepository

logger = logging.getLogger(__name__)

DEFAULT_PARTICIPATION_THRESHOLD_BPS = 9000
DEFAULT_CONTENT_THRESHOLD_BPS = 9000


@dataclass(frozen=True, slots=True)
class QuorumThresholds:
    """Participation and content thresholds in basis points."""

    participation_bps: int = DEFAULT_PARTICIPATION_THRESHOLD_BPS
    content_bps: int = DEFAULT_CONTENT_THRESHOLD_BPS

    def __post_init__(self) -> None:
        if not 0 <= self.participation_bps <= 10_000:
            raise ValueError(
                "participation threshold must be within 0..10000 bps, "
                f"got {self.participation_bps}",
            )
        if not 1 <= self.content_bps <= 10_000:
            raise ValueError(
                f"content threshold must be within 1..10000 bps, got {self.content_bps}",
            )


class QuorumEngine:
    """Stateless evaluator; every call re-reads the store and the directory."""

    def __init__(
        self,
        *,
        repository: TaskRepository,
        directory: OperatorDirectory,
        thresholds: QuorumThresholds | None = None,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.thresholds = thresholds or QuorumThresholds()

    def evaluate_task(self, task_id: int) -> EvaluationOutcome:
        task = self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(message=f"Task with ID {task_id} not found")
        if task.status.is_terminal:
            logger.debug("[Task %s] Already finalized as %s", task_id, task.status.value)
            return AlreadyFinalized(task_id=task_id, status=task.status)

        participation = check_participation(
            responses_count=self.repository.count_responses(task_id),
            operators_count=self.directory.current_operator_count(),
            threshold_bps=self.thresholds.participation_bps,
        )
        if not participation.reached:
            logger.info(
                "[Task %s] Waiting for more responses. %d out of %d received so far "
                "and quorum is %d/%d",
                task_id,
                participation.responses_count,
                participation.operators_count,
                participation.quorum,
                participation.operators_count,
            )
            return Deferred(
                task_id=task_id,
                responses_count=participation.responses_count,
                operators_count=participation.operators_count,
                quorum=participation.quorum,
            )

        logger.info(
            "[Task %s] Reached quorum of %d/%d: verifying responses",
            task_id,
            participation.quorum,
            participation.operators_count,
        )
        responses = self.repository.list_responses(task_id)
        content = check_content(
            (item.response for item in responses),
            threshold_bps=self.thresholds.content_bps,
        )
        details: dict[str, object] = {
            "responses_count": content.responses_count,
            "largest_group": content.largest_group,
            "operators_count": participation.operators_count,
            "quorum": participation.quorum,
        }

        if content.winner is not None:
            if not self.repository.finalize_task(
                task_id=task_id,
                status=TaskStatus.COMPLETED,
                response=content.winner,
                details=details,
            ):
                return self._lost_race(task_id)
            logger.info("[Task %s] Consensus on responses reached", task_id)
            return Finalized(task_id=task_id, response=content.winner)

        if not self.repository.finalize_task(
            task_id=task_id,
            status=TaskStatus.CONSENSUS_NOT_REACHED,
            response=None,
            details=details,
        ):
            return self._lost_race(task_id)
        logger.info(
            "[Task %s] Responses were too different: unable to reach consensus "
            "(largest group %d of %d)",
            task_id,
            content.largest_group,
            content.responses_count,
        )
        return Undecidable(
            task_id=task_id,
            responses_count=content.responses_count,
            largest_group=content.largest_group,
        )

    def _lost_race(self, task_id: int) -> AlreadyFinalized:
        task = self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(message=f"Task with ID {task_id} not found")
        logger.debug("[Task %s] Finalized concurrently as %s", task_id, task.status.value)
        return AlreadyFinalized(task_id=task_id, status=task.status)

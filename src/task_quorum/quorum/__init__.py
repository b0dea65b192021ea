"""Task lifecycle and quorum-consensus engine.

Operators poll for the oldest task they have not answered, submit a signed
response, and every admitted response triggers a re-evaluation. A task is
decided at most once: the first evaluation that sees enough agreeing
responses moves it out of READY with a conditional update, and every later
evaluation observes the terminal state and backs off.
"""

from task_quorum.quorum.engine import QuorumEngine, QuorumThresholds
from task_quorum.quorum.models import (
    AlreadyFinalized,
    Deferred,
    EvaluationOutcome,
    Finalized,
    TaskStatus,
    Undecidable,
)
from task_quorum.quorum.services import TaskQuorumService

__all__ = [
    "AlreadyFinalized",
    "Deferred",
    "EvaluationOutcome",
    "Finalized",
    "QuorumEngine",
    "QuorumThresholds",
    "TaskQuorumService",
    "TaskStatus",
    "Undecidable",
]

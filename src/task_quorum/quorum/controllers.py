"""Controllers for task quorum CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from task_quorum.config import Settings
from task_quorum.quorum.collaborators import (
    GuardedOperatorDirectory,
    GuardedResponseAuthenticator,
)
from task_quorum.quorum.engine import QuorumEngine
from task_quorum.quorum.models import (
    AlreadyFinalized,
    Deferred,
    EvaluationOutcome,
    Finalized,
    ResponseSubmission,
    TaskStatus,
    TaskView,
    Undecidable,
)
from task_quorum.quorum.registry import (
    Ed25519ResponseAuthenticator,
    OperatorRegistry,
    RegistryOperatorDirectory,
)
from task_quorum.quorum.repository import TaskRepository
from task_quorum.quorum.services import TaskQuorumService
from task_quorum.quorum.signatures import (
    generate_operator_keypair,
    load_private_key,
    sign_response,
    write_keypair,
)
from task_quorum.storage.common import from_ms


@dataclass(slots=True)
class AddTaskCommand:
    """CLI input for creating one task."""

    db_path: Path | None
    input_payload: str


@dataclass(slots=True)
class GenerateTasksCommand:
    """CLI input for demo task generation."""

    db_path: Path | None
    count: int
    points: int


@dataclass(slots=True)
class NextTaskCommand:
    """CLI input for dispatch lookup."""

    db_path: Path | None
    operator_id: str


@dataclass(slots=True)
class SubmitResponseCommand:
    """CLI input for response admission."""

    db_path: Path | None
    task_id: int
    operator_id: str
    response: str
    signature: str


@dataclass(slots=True)
class EvaluateTaskCommand:
    """CLI input for out-of-band evaluation."""

    db_path: Path | None
    task_id: int


@dataclass(slots=True)
class SweepCommand:
    """CLI input for sweeping READY tasks."""

    db_path: Path | None
    limit: int | None


@dataclass(slots=True)
class ListTasksCommand:
    """CLI input for task listing."""

    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class InspectTaskCommand:
    """CLI input for task inspection."""

    db_path: Path | None
    task_id: int


@dataclass(slots=True)
class KeygenCommand:
    """CLI input for operator key generation."""

    private_key_path: Path
    public_key_path: Path


@dataclass(slots=True)
class RegisterOperatorCommand:
    """CLI input for operator registration."""

    db_path: Path | None
    operator_id: str
    public_key_path: Path


@dataclass(slots=True)
class DeactivateOperatorCommand:
    """CLI input for operator deactivation."""

    db_path: Path | None
    operator_id: str


@dataclass(slots=True)
class SignResponseCommand:
    """CLI input for operator-side signing."""

    private_key_path: Path
    task_id: int
    response: str


class QuorumCliController:
    """Coordinates task, admission and operator CLI operations."""

    def add_task(self, command: AddTaskCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            task = runtime.service.create_task(command.input_payload)
        return [f"Task created: task_id={task.task_id} status={task.status.value}"]

    def generate_tasks(self, command: GenerateTasksCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            tasks = runtime.service.generate_demo_tasks(count=command.count, points=command.points)
        return [f"Task created: task_id={task.task_id} input={task.input}" for task in tasks]

    def next_task(self, command: NextTaskCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            task = runtime.service.get_next_ready_task(command.operator_id)
        if task is None:
            return [f"No ready task for operator {command.operator_id}."]
        return [
            f"Task: {task.task_id}",
            f"Created: {from_ms(task.created_at_ms).isoformat()}",
            f"Input: {task.input}",
        ]

    def submit_response(self, command: SubmitResponseCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            result = runtime.service.admit_response(
                ResponseSubmission(
                    task_id=command.task_id,
                    operator_id=command.operator_id,
                    response=command.response,
                    signature=command.signature,
                ),
            )
        lines = [
            "Response admitted: "
            f"task_id={result.response.task_id} operator_id={result.response.operator_id} "
            f"response_id={result.response.response_id}",
        ]
        if result.evaluation is None:
            lines.append("Evaluation: unavailable (will be retried by the next sweep)")
        else:
            lines.append(f"Evaluation: {describe_outcome(result.evaluation)}")
        return lines

    def evaluate_task(self, command: EvaluateTaskCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            outcome = runtime.service.evaluate_task(command.task_id)
        return [f"Evaluation: {describe_outcome(outcome)}"]

    def sweep(self, command: SweepCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        limit = command.limit or settings.quorum.sweep_limit
        with _runtime(settings) as runtime:
            outcomes = runtime.service.sweep_ready_tasks(limit=limit)
        if not outcomes:
            return ["No ready tasks."]
        return [f"Evaluation: {describe_outcome(outcome)}" for outcome in outcomes]

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        status = TaskStatus(command.status.upper()) if command.status is not None else None
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            tasks = runtime.repository.list_tasks(status=status, limit=command.limit)
        if not tasks:
            return ["No tasks found."]
        return [_task_line(task) for task in tasks]

    def inspect_task(self, command: InspectTaskCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            details = runtime.repository.get_task_details(task_id=command.task_id)
        if details is None:
            return [f"Task not found: {command.task_id}"]

        task = details.task
        lines = [
            f"Task: {task.task_id}",
            f"Status: {task.status.value}",
            f"Created: {from_ms(task.created_at_ms).isoformat()}",
            f"Input: {task.input}",
            f"Response: {task.response if task.response is not None else '-'}",
            f"Responses: {len(details.responses)}",
            f"Events: {len(details.events)}",
        ]
        for response in details.responses:
            lines.append(
                f"  {from_ms(response.created_at_ms).isoformat()} "
                f"operator={response.operator_id} response={response.response}",
            )
        for event in details.events:
            lines.append(
                f"  {from_ms(event.created_at_ms).isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def keygen(self, command: KeygenCommand) -> list[str]:
        write_keypair(
            generate_operator_keypair(),
            command.private_key_path,
            command.public_key_path,
        )
        return [
            f"Private key: {command.private_key_path}",
            f"Public key: {command.public_key_path}",
        ]

    def register_operator(self, command: RegisterOperatorCommand) -> list[str]:
        public_key = command.public_key_path.read_text(encoding="utf-8").strip()
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            operator = runtime.registry.register_operator(
                operator_id=command.operator_id,
                public_key=public_key,
            )
            active_count = runtime.registry.count_active_operators()
        return [
            f"Operator registered: {operator.operator_id}",
            f"Active operators: {active_count}",
        ]

    def deactivate_operator(self, command: DeactivateOperatorCommand) -> list[str]:
        with _runtime(Settings.from_env(db_path=command.db_path)) as runtime:
            if not runtime.registry.deactivate_operator(operator_id=command.operator_id):
                return [f"Operator not found: {command.operator_id}"]
        return [f"Operator deactivated: {command.operator_id}"]

    def list_operators(self, db_path: Path | None) -> list[str]:
        with _runtime(Settings.from_env(db_path=db_path)) as runtime:
            operators = runtime.registry.list_operators()
        if not operators:
            return ["No operators registered."]
        return [
            f"{operator.operator_id} active={operator.active} "
            f"registered_at={from_ms(operator.registered_at_ms).isoformat()}"
            for operator in operators
        ]

    def sign(self, command: SignResponseCommand) -> list[str]:
        private_key = load_private_key(command.private_key_path)
        return [sign_response(private_key, command.task_id, command.response)]


def describe_outcome(outcome: EvaluationOutcome) -> str:
    if isinstance(outcome, Finalized):
        return f"task {outcome.task_id} COMPLETED response={outcome.response}"
    if isinstance(outcome, Deferred):
        return (
            f"task {outcome.task_id} deferred: {outcome.responses_count} of "
            f"{outcome.operators_count} responses, quorum {outcome.quorum}"
        )
    if isinstance(outcome, Undecidable):
        return (
            f"task {outcome.task_id} CONSENSUS_NOT_REACHED: largest group "
            f"{outcome.largest_group} of {outcome.responses_count}"
        )
    if isinstance(outcome, AlreadyFinalized):
        return f"task {outcome.task_id} already finalized as {outcome.status.value}"
    raise TypeError(f"Unknown evaluation outcome: {outcome!r}")


def _task_line(task: TaskView) -> str:
    return (
        f"{task.task_id} {task.status.value} "
        f"created={from_ms(task.created_at_ms).isoformat()} "
        f"response={task.response if task.response is not None else '-'}"
    )


@dataclass(slots=True)
class _Runtime:
    repository: TaskRepository
    registry: OperatorRegistry
    service: TaskQuorumService


@contextmanager
def _runtime(settings: Settings) -> Iterator[_Runtime]:
    settings.validate()
    repository = TaskRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    registry = OperatorRegistry(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    timeout = settings.collaborators.timeout_seconds
    engine = QuorumEngine(
        repository=repository,
        directory=GuardedOperatorDirectory(
            RegistryOperatorDirectory(registry),
            timeout_seconds=timeout,
        ),
        thresholds=settings.quorum.thresholds(),
    )
    service = TaskQuorumService(
        repository=repository,
        engine=engine,
        authenticator=GuardedResponseAuthenticator(
            Ed25519ResponseAuthenticator(registry),
            timeout_seconds=timeout,
        ),
    )
    try:
        yield _Runtime(repository=repository, registry=registry, service=service)
    finally:
        registry.close()
        repository.close()

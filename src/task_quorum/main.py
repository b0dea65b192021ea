"""CLI entrypoint for task-quorum."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click
from cryptography.exceptions import UnsupportedAlgorithm

from task_quorum import __version__
from task_quorum.config import Settings
from task_quorum.logging_cfg import configure_logging
from task_quorum.quorum.controllers import (
    AddTaskCommand,
    DeactivateOperatorCommand,
    EvaluateTaskCommand,
    GenerateTasksCommand,
    InspectTaskCommand,
    KeygenCommand,
    ListTasksCommand,
    NextTaskCommand,
    QuorumCliController,
    RegisterOperatorCommand,
    SignResponseCommand,
    SubmitResponseCommand,
    SweepCommand,
)
from task_quorum.quorum.errors import AdmissionError, CollaboratorError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = QuorumCliController()


@click.group()
@click.version_option(version=__version__, prog_name="task-quorum")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level. Defaults to TASK_QUORUM_LOG_LEVEL or INFO.",
)
def task_quorum(log_level: str | None) -> None:
    """Quorum consensus over signed operator responses."""

    configure_logging(log_level or Settings.from_env().log_level)


@task_quorum.group()
def tasks() -> None:
    """Task intake, dispatch, admission and evaluation commands."""


@tasks.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--input", "input_payload", required=True, help="Opaque serialized task input.")
def tasks_add(db_path: Path | None, input_payload: str) -> None:
    """Create one READY task."""

    _emit_lines(CONTROLLER.add_task(AddTaskCommand(db_path=db_path, input_payload=input_payload)))


@tasks.command("generate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--count",
    type=click.IntRange(min=1, max=1000),
    default=1,
    show_default=True,
    help="How many demo tasks to create.",
)
@click.option(
    "--points",
    type=click.IntRange(min=2, max=1000),
    default=10,
    show_default=True,
    help="Random travelling-salesman points per task.",
)
def tasks_generate(db_path: Path | None, count: int, points: int) -> None:
    """Create demo tasks with random point sets as input."""

    _emit_lines(
        CONTROLLER.generate_tasks(
            GenerateTasksCommand(db_path=db_path, count=count, points=points),
        ),
    )


@tasks.command("next")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--operator-id", required=True, help="Polling operator id.")
def tasks_next(db_path: Path | None, operator_id: str) -> None:
    """Show the oldest READY task the operator has not answered."""

    _emit_lines(CONTROLLER.next_task(NextTaskCommand(db_path=db_path, operator_id=operator_id)))


@tasks.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--task-id", type=int, required=True, help="Task id.")
@click.option("--operator-id", required=True, help="Responding operator id.")
@click.option("--response", required=True, help="Opaque response payload.")
@click.option("--signature", required=True, help="Base64 Ed25519 signature.")
def tasks_submit(
    db_path: Path | None,
    task_id: int,
    operator_id: str,
    response: str,
    signature: str,
) -> None:
    """Admit a signed operator response and re-evaluate the task."""

    _emit_guarded(
        lambda: CONTROLLER.submit_response(
            SubmitResponseCommand(
                db_path=db_path,
                task_id=task_id,
                operator_id=operator_id,
                response=response,
                signature=signature,
            ),
        ),
    )


@tasks.command("evaluate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--task-id", type=int, required=True, help="Task id.")
def tasks_evaluate(db_path: Path | None, task_id: int) -> None:
    """Evaluate one task out of band."""

    _emit_guarded(
        lambda: CONTROLLER.evaluate_task(EvaluateTaskCommand(db_path=db_path, task_id=task_id)),
    )


@tasks.command("sweep")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--limit",
    type=click.IntRange(min=1),
    default=None,
    help="Max READY tasks to evaluate. Defaults to TASK_QUORUM_SWEEP_LIMIT.",
)
def tasks_sweep(db_path: Path | None, limit: int | None) -> None:
    """Re-evaluate READY tasks, oldest first."""

    _emit_guarded(lambda: CONTROLLER.sweep(SweepCommand(db_path=db_path, limit=limit)))


@tasks.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(["ready", "completed", "consensus_not_reached"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max tasks to print.",
)
def tasks_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List tasks, newest first."""

    _emit_lines(
        CONTROLLER.list_tasks(ListTasksCommand(db_path=db_path, status=status, limit=limit)),
    )


@tasks.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--task-id", type=int, required=True, help="Task id.")
def tasks_inspect(db_path: Path | None, task_id: int) -> None:
    """Inspect one task with responses and event history."""

    _emit_lines(CONTROLLER.inspect_task(InspectTaskCommand(db_path=db_path, task_id=task_id)))


@task_quorum.group()
def operators() -> None:
    """Operator registry and signing commands."""


@operators.command("keygen")
@click.option(
    "--private-key",
    "private_key_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Where to write the PEM private key.",
)
@click.option(
    "--public-key",
    "public_key_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Where to write the base64 public key.",
)
def operators_keygen(private_key_path: Path, public_key_path: Path) -> None:
    """Generate an Ed25519 operator keypair."""

    _emit_lines(
        CONTROLLER.keygen(
            KeygenCommand(private_key_path=private_key_path, public_key_path=public_key_path),
        ),
    )


@operators.command("register")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--operator-id", required=True, help="Operator id.")
@click.option(
    "--public-key",
    "public_key_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="File with the base64 public key.",
)
def operators_register(db_path: Path | None, operator_id: str, public_key_path: Path) -> None:
    """Register (or reactivate) an operator."""

    try:
        lines = CONTROLLER.register_operator(
            RegisterOperatorCommand(
                db_path=db_path,
                operator_id=operator_id,
                public_key_path=public_key_path,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@operators.command("deactivate")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--operator-id", required=True, help="Operator id.")
def operators_deactivate(db_path: Path | None, operator_id: str) -> None:
    """Make an operator ineligible for future responses."""

    _emit_lines(
        CONTROLLER.deactivate_operator(
            DeactivateOperatorCommand(db_path=db_path, operator_id=operator_id),
        ),
    )


@operators.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def operators_list(db_path: Path | None) -> None:
    """List registered operators."""

    _emit_lines(CONTROLLER.list_operators(db_path))


@operators.command("sign")
@click.option(
    "--private-key",
    "private_key_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="PEM private key file.",
)
@click.option("--task-id", type=int, required=True, help="Task id.")
@click.option("--response", required=True, help="Response payload to sign.")
def operators_sign(private_key_path: Path, task_id: int, response: str) -> None:
    """Print the base64 signature an operator submits with a response."""

    try:
        lines = CONTROLLER.sign(
            SignResponseCommand(
                private_key_path=private_key_path,
                task_id=task_id,
                response=response,
            ),
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        raise click.ClickException(
            f"Cannot load private key {private_key_path}: {error}",
        ) from error
    _emit_lines(lines)


def _emit_guarded(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except AdmissionError as error:
        raise click.ClickException(f"{error.code}: {error}") from error
    except CollaboratorError as error:
        raise click.ClickException(f"collaborator_unavailable: {error}") from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    task_quorum()

"""Contracts for external collaborators and timeout guards around them.

The operator directory and the response authenticator may be remote. Every
call made by the engine goes through a guard that bounds it with a timeout
and maps failures onto the retriable :class:`CollaboratorError` family, so a
slow or broken collaborator is never mistaken for "operator not eligible".
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Protocol, TypeVar

from task_quorum.quorum.errors import (
    CollaboratorError,
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperatorDirectory(Protocol):
    """Source of truth for which operators may respond."""

    def current_operator_count(self) -> int:
        """Number of operators currently eligible to respond."""

    def is_eligible(self, operator_id: str) -> bool:
        """Whether the operator is currently eligible to respond."""


class ResponseAuthenticator(Protocol):
    """Verifies that a response was signed by the operator's registered key."""

    def verify(self, task_id: int, response: str, operator_id: str, signature: str) -> bool:
        """True only when the signature matches the canonical payload."""


def call_with_timeout(
    collaborator: str,
    func: Callable[[], T],
    *,
    timeout_seconds: float,
) -> T:
    """Run ``func`` on a daemon thread and wait at most ``timeout_seconds``.

    A call that times out is abandoned; its thread never blocks interpreter exit.
    """

    outcome_q: queue.Queue[tuple[bool, object]] = queue.Queue(maxsize=1)

    def _run() -> None:
        try:
            outcome_q.put((True, func()))
        except Exception as exc:  # noqa: BLE001
            outcome_q.put((False, exc))

    worker_thread = threading.Thread(
        target=_run,
        name=f"task-quorum-{collaborator.replace(' ', '-')}",
        daemon=True,
    )
    worker_thread.start()
    try:
        ok, value = outcome_q.get(timeout=timeout_seconds)
    except queue.Empty as error:
        logger.warning("%s timed out after %.1fs", collaborator, timeout_seconds)
        raise CollaboratorTimeoutError(
            message=f"{collaborator} did not answer within {timeout_seconds:.1f}s",
            collaborator=collaborator,
        ) from error

    if ok:
        return value  # type: ignore[return-value]
    if isinstance(value, CollaboratorError):
        raise value
    raise CollaboratorUnavailableError(
        message=f"{collaborator} call failed: {value}",
        collaborator=collaborator,
    ) from value  # type: ignore[misc]


class GuardedOperatorDirectory:
    """Operator directory wrapper with bounded, classified calls."""

    def __init__(self, inner: OperatorDirectory, *, timeout_seconds: float) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    def current_operator_count(self) -> int:
        count = call_with_timeout(
            "operator directory",
            self.inner.current_operator_count,
            timeout_seconds=self.timeout_seconds,
        )
        if count < 0:
            raise CollaboratorUnavailableError(
                message=f"operator directory returned a negative count: {count}",
                collaborator="operator directory",
            )
        return count

    def is_eligible(self, operator_id: str) -> bool:
        return bool(
            call_with_timeout(
                "operator directory",
                lambda: self.inner.is_eligible(operator_id),
                timeout_seconds=self.timeout_seconds,
            ),
        )


class GuardedResponseAuthenticator:
    """Response authenticator wrapper with bounded, classified calls."""

    def __init__(self, inner: ResponseAuthenticator, *, timeout_seconds: float) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    def verify(self, task_id: int, response: str, operator_id: str, signature: str) -> bool:
        return bool(
            call_with_timeout(
                "response authenticator",
                lambda: self.inner.verify(task_id, response, operator_id, signature),
                timeout_seconds=self.timeout_seconds,
            ),
        )

"""Error taxonomy for admission and collaborator failures."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class AdmissionError(Exception):
    """Base client input error. Surfaced to the caller, never retried."""

    message: str
    code: str = "admission_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TaskNotFoundError(AdmissionError):
    """No task exists with the requested identifier."""

    code: str = "not_found"


@dataclass(slots=True)
class UnauthorizedOperatorError(AdmissionError):
    """Operator is not currently eligible to respond."""

    code: str = "unauthorized"


@dataclass(slots=True)
class InvalidSignatureError(AdmissionError):
    """Signature does not match the operator's key over the canonical payload."""

    code: str = "invalid_signature"


@dataclass(slots=True)
class DuplicateResponseError(AdmissionError):
    """Operator already has a stored response for this task."""

    code: str = "duplicate_response"


@dataclass(slots=True)
class TaskAlreadyFinalizedError(AdmissionError):
    """Task has reached a terminal state and accepts no more responses."""

    code: str = "already_finalized"


@dataclass(slots=True)
class CollaboratorError(Exception):
    """Retriable infrastructure failure of a remote collaborator."""

    message: str
    collaborator: str = "collaborator"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class CollaboratorTimeoutError(CollaboratorError):
    """Collaborator did not answer within the configured timeout."""


@dataclass(slots=True)
class CollaboratorUnavailableError(CollaboratorError):
    """Collaborator call raised instead of answering."""

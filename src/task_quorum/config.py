"""Runtime configuration for the task quorum service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from task_quorum.quorum.engine import (
    DEFAULT_CONTENT_THRESHOLD_BPS,
    DEFAULT_PARTICIPATION_THRESHOLD_BPS,
    QuorumThresholds,
)


@dataclass(slots=True)
class QuorumSettings:
    """Consensus thresholds in basis points (10000 = 100%)."""

    participation_threshold_bps: int = DEFAULT_PARTICIPATION_THRESHOLD_BPS
    content_threshold_bps: int = DEFAULT_CONTENT_THRESHOLD_BPS
    sweep_limit: int = 100

    def thresholds(self) -> QuorumThresholds:
        return QuorumThresholds(
            participation_bps=self.participation_threshold_bps,
            content_bps=self.content_threshold_bps,
        )


@dataclass(slots=True)
class CollaboratorSettings:
    """Bounds for calls to the operator directory and authenticator."""

    timeout_seconds: float = 5.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".task_quorum.db")
    sqlite_busy_timeout_ms: int = 5000
    log_level: str = "INFO"
    quorum: QuorumSettings = field(default_factory=QuorumSettings)
    collaborators: CollaboratorSettings = field(default_factory=CollaboratorSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("TASK_QUORUM_DB_PATH", ".task_quorum.db")),
            sqlite_busy_timeout_ms=_env_int("TASK_QUORUM_SQLITE_BUSY_TIMEOUT_MS", 5000),
            log_level=os.getenv("TASK_QUORUM_LOG_LEVEL", "INFO"),
            quorum=QuorumSettings(
                participation_threshold_bps=_env_int(
                    "TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS",
                    DEFAULT_PARTICIPATION_THRESHOLD_BPS,
                ),
                content_threshold_bps=_env_int(
                    "TASK_QUORUM_CONTENT_THRESHOLD_BPS",
                    DEFAULT_CONTENT_THRESHOLD_BPS,
                ),
                sweep_limit=_env_int("TASK_QUORUM_SWEEP_LIMIT", 100),
            ),
            collaborators=CollaboratorSettings(
                timeout_seconds=_env_float("TASK_QUORUM_COLLABORATOR_TIMEOUT_SECONDS", 5.0),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if not 0 <= self.quorum.participation_threshold_bps <= 10_000:
            raise ValueError("TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS must be within 0..10000.")
        if not 1 <= self.quorum.content_threshold_bps <= 10_000:
            raise ValueError("TASK_QUORUM_CONTENT_THRESHOLD_BPS must be within 1..10000.")
        if self.quorum.sweep_limit <= 0:
            raise ValueError("TASK_QUORUM_SWEEP_LIMIT must be > 0.")
        if self.collaborators.timeout_seconds <= 0:
            raise ValueError("TASK_QUORUM_COLLABORATOR_TIMEOUT_SECONDS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("TASK_QUORUM_SQLITE_BUSY_TIMEOUT_MS must be > 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {value!r}") from error

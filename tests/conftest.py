"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fakes import StaticAuthenticator, StaticOperatorDirectory

from task_quorum.quorum.engine import QuorumEngine, QuorumThresholds
from task_quorum.quorum.repository import TaskRepository
from task_quorum.quorum.services import TaskQuorumService


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[TaskRepository]:
    repo = TaskRepository(tmp_path / "quorum.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def directory() -> StaticOperatorDirectory:
    return StaticOperatorDirectory(operators_count=10)


@pytest.fixture()
def authenticator() -> StaticAuthenticator:
    return StaticAuthenticator()


@pytest.fixture()
def engine(repository: TaskRepository, directory: StaticOperatorDirectory) -> QuorumEngine:
    return QuorumEngine(
        repository=repository,
        directory=directory,
        thresholds=QuorumThresholds(participation_bps=9000, content_bps=9000),
    )


@pytest.fixture()
def service(
    repository: TaskRepository,
    engine: QuorumEngine,
    authenticator: StaticAuthenticator,
) -> TaskQuorumService:
    return TaskQuorumService(repository=repository, engine=engine, authenticator=authenticator)

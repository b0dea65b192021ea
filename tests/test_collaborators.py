from __future__ import annotations

import os
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import allure
import pytest
from fakes import StaticAuthenticator, StaticOperatorDirectory

from task_quorum.quorum.collaborators import (
    GuardedOperatorDirectory,
    GuardedResponseAuthenticator,
    call_with_timeout,
)
from task_quorum.quorum.errors import (
    CollaboratorError,
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
)

pytestmark = [
    allure.epic("Quorum Engine"),
    allure.feature("Collaborator Guards"),
]


def test_call_with_timeout_returns_value() -> None:
    assert call_with_timeout("directory", lambda: 42, timeout_seconds=1.0) == 42


def test_call_with_timeout_raises_timeout_error() -> None:
    release = threading.Event()
    try:
        with pytest.raises(CollaboratorTimeoutError) as error:
            call_with_timeout("directory", lambda: release.wait(5), timeout_seconds=0.05)
    finally:
        release.set()

    assert error.value.collaborator == "directory"
    assert "did not answer" in str(error.value)


def test_call_with_timeout_wraps_unexpected_errors() -> None:
    def broken() -> int:
        raise ConnectionError("refused")

    with pytest.raises(CollaboratorUnavailableError, match="refused") as error:
        call_with_timeout("authenticator", broken, timeout_seconds=1.0)
    assert isinstance(error.value.__cause__, ConnectionError)


def test_call_with_timeout_passes_collaborator_errors_through() -> None:
    def failing() -> int:
        raise CollaboratorTimeoutError(message="upstream timeout", collaborator="upstream")

    with pytest.raises(CollaboratorTimeoutError) as error:
        call_with_timeout("directory", failing, timeout_seconds=1.0)
    assert error.value.collaborator == "upstream"


def test_guarded_directory_delegates() -> None:
    inner = StaticOperatorDirectory(3, eligible={"alice"})
    guarded = GuardedOperatorDirectory(inner, timeout_seconds=1.0)

    assert guarded.current_operator_count() == 3
    assert guarded.is_eligible("alice") is True
    assert guarded.is_eligible("bob") is False


def test_guarded_directory_rejects_negative_count() -> None:
    guarded = GuardedOperatorDirectory(StaticOperatorDirectory(-1), timeout_seconds=1.0)

    with pytest.raises(CollaboratorError, match="negative"):
        guarded.current_operator_count()


def test_guarded_authenticator_delegates() -> None:
    inner = StaticAuthenticator()
    guarded = GuardedResponseAuthenticator(inner, timeout_seconds=1.0)

    assert guarded.verify(1, "r", "alice", "valid") is True
    assert guarded.verify(1, "r", "alice", "bad") is False
    assert inner.calls == [(1, "r", "alice", "valid"), (1, "r", "alice", "bad")]


def test_timed_out_call_does_not_delay_interpreter_exit() -> None:
    script = textwrap.dedent(
        """
        import time

        from task_quorum.quorum.collaborators import call_with_timeout
        from task_quorum.quorum.errors import CollaboratorTimeoutError

        try:
            call_with_timeout("directory", lambda: time.sleep(30), timeout_seconds=0.1)
        except CollaboratorTimeoutError:
            print("timed out")
        """,
    )
    src_dir = Path(__file__).resolve().parents[1] / "src"
    python_path = os.pathsep.join([str(src_dir), os.environ.get("PYTHONPATH", "")])

    started = time.monotonic()
    completed = subprocess.run(
        [sys.executable, "-c", script],
        capture_output=True,
        text=True,
        timeout=20,
        check=False,
        env={**os.environ, "PYTHONPATH": python_path},
    )
    elapsed = time.monotonic() - started

    assert completed.returncode == 0, completed.stderr
    assert "timed out" in completed.stdout
    assert elapsed < 10


def test_hung_calls_do_not_starve_later_calls() -> None:
    release = threading.Event()
    try:
        for _ in range(12):
            with pytest.raises(CollaboratorTimeoutError):
                call_with_timeout("directory", lambda: release.wait(5), timeout_seconds=0.01)

        assert call_with_timeout("directory", lambda: "ok", timeout_seconds=1.0) == "ok"
    finally:
        release.set()

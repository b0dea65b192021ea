from __future__ import annotations

from pathlib import Path

import allure
import pytest

from task_quorum.config import Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]

_ENV_NAMES = (
    "TASK_QUORUM_DB_PATH",
    "TASK_QUORUM_SQLITE_BUSY_TIMEOUT_MS",
    "TASK_QUORUM_LOG_LEVEL",
    "TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS",
    "TASK_QUORUM_CONTENT_THRESHOLD_BPS",
    "TASK_QUORUM_SWEEP_LIMIT",
    "TASK_QUORUM_COLLABORATOR_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()

    assert settings.db_path == Path(".task_quorum.db")
    assert settings.log_level == "INFO"
    assert settings.quorum.participation_threshold_bps == 9000
    assert settings.quorum.content_threshold_bps == 9000
    assert settings.quorum.sweep_limit == 100
    assert settings.collaborators.timeout_seconds == 5.0
    settings.validate()


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASK_QUORUM_DB_PATH", str(tmp_path / "env.db"))
    monkeypatch.setenv("TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS", "6000")
    monkeypatch.setenv("TASK_QUORUM_CONTENT_THRESHOLD_BPS", " 5000 ")
    monkeypatch.setenv("TASK_QUORUM_COLLABORATOR_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("TASK_QUORUM_LOG_LEVEL", "DEBUG")

    settings = Settings.from_env()

    assert settings.db_path == tmp_path / "env.db"
    assert settings.log_level == "DEBUG"
    thresholds = settings.quorum.thresholds()
    assert thresholds.participation_bps == 6000
    assert thresholds.content_bps == 5000
    assert settings.collaborators.timeout_seconds == 0.5


def test_explicit_db_path_wins_over_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASK_QUORUM_DB_PATH", str(tmp_path / "env.db"))

    assert Settings.from_env(db_path=tmp_path / "cli.db").db_path == tmp_path / "cli.db"


def test_invalid_integer_names_the_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASK_QUORUM_SWEEP_LIMIT", "lots")

    with pytest.raises(ValueError, match="TASK_QUORUM_SWEEP_LIMIT"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS", "10001"),
        ("TASK_QUORUM_CONTENT_THRESHOLD_BPS", "0"),
        ("TASK_QUORUM_SWEEP_LIMIT", "0"),
        ("TASK_QUORUM_COLLABORATOR_TIMEOUT_SECONDS", "0"),
        ("TASK_QUORUM_SQLITE_BUSY_TIMEOUT_MS", "-5"),
    ],
)
def test_validate_rejects_out_of_range(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        Settings.from_env().validate()


def test_zero_participation_threshold_is_allowed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASK_QUORUM_PARTICIPATION_THRESHOLD_BPS", "0")

    Settings.from_env().validate()

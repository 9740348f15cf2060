from __future__ import annotations

from pathlib import Path

import allure
import pytest

from resume_forge.config import AiSettings, Settings, WorkerSettings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "RESUME_FORGE_DB_PATH",
        "RESUME_FORGE_INITIAL_BALANCE",
        "RESUME_FORGE_OPENAI_API_KEY",
        "RESUME_FORGE_PERPLEXITY_API_KEY",
        "RESUME_FORGE_USER_ID",
        "RESUME_FORGE_REAP_ON_START",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".resume_forge.db")
    assert settings.ledger.initial_balance == 0
    assert settings.ai.openai_api_key == ""
    assert settings.worker.stale_after_seconds == 600
    assert settings.worker.reap_on_start is True
    assert settings.user_context.user_id == "default_user"


def test_from_env_parses_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RESUME_FORGE_INITIAL_BALANCE", "250")
    monkeypatch.setenv("RESUME_FORGE_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("RESUME_FORGE_OPENAI_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("RESUME_FORGE_WORKER_MAX_WORKERS", "4")
    monkeypatch.setenv("RESUME_FORGE_REAP_ON_START", "off")
    monkeypatch.setenv("RESUME_FORGE_CANCEL_POLL_SECONDS", "0.5")
    monkeypatch.setenv("RESUME_FORGE_USER_ID", "user-42")
    monkeypatch.setenv("RESUME_FORGE_LOG_LEVEL", "debug")

    settings = Settings.from_env(db_path=tmp_path / "custom.db")

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.ledger.initial_balance == 250
    assert settings.ai.openai_api_key == "sk-test"
    assert settings.ai.openai_timeout_seconds == 12.5
    assert settings.worker.max_workers == 4
    assert settings.worker.reap_on_start is False
    assert settings.worker.cancel_poll_seconds == 0.5
    assert settings.user_context.user_id == "user-42"
    assert settings.log_level == "DEBUG"


def test_from_env_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESUME_FORGE_NOTIFICATIONS_ENABLED", "maybe")

    with pytest.raises(ValueError, match="RESUME_FORGE_NOTIFICATIONS_ENABLED"):
        Settings.from_env()


def test_validate_for_ai_requires_a_provider_key() -> None:
    with pytest.raises(ValueError, match="No AI provider configured"):
        Settings().validate_for_ai()

    Settings(ai=AiSettings(perplexity_api_key="pplx")).validate_for_ai()


@pytest.mark.parametrize(
    ("ai", "message"),
    [
        (AiSettings(openai_api_key="sk", openai_base_url="ftp://llm"), "OPENAI_BASE_URL"),
        (AiSettings(openai_api_key="sk", perplexity_base_url="not-a-url"), "PERPLEXITY_BASE_URL"),
        (AiSettings(openai_api_key="sk", openai_timeout_seconds=0), "timeouts"),
        (AiSettings(openai_api_key="sk", max_retries=-1), "MAX_RETRIES"),
    ],
)
def test_validate_for_ai_rejects_bad_values(ai: AiSettings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(ai=ai).validate_for_ai()


@pytest.mark.parametrize(
    ("worker", "message"),
    [
        (WorkerSettings(executor_id="w", max_workers=0), "MAX_WORKERS"),
        (WorkerSettings(executor_id="w", poll_interval_seconds=0), "POLL_INTERVAL"),
        (WorkerSettings(executor_id="w", stale_after_seconds=0), "STALE_AFTER"),
        (WorkerSettings(executor_id="w", cancel_poll_seconds=-1), "CANCEL_POLL"),
        (WorkerSettings(executor_id="  "), "EXECUTOR_ID"),
    ],
)
def test_validate_for_worker_rejects_bad_values(worker: WorkerSettings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(worker=worker).validate_for_worker()


def test_validate_for_worker_accepts_defaults() -> None:
    Settings(worker=WorkerSettings(executor_id="picker-test")).validate_for_worker()

"""Runtime configuration for the ledger, AI providers, and task executors."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from resume_forge.ai.providers import (
    OPENAI_BASE_URL,
    OPENAI_DEFAULT_MODEL,
    OPENAI_TIMEOUT_SECONDS,
    PERPLEXITY_BASE_URL,
    PERPLEXITY_DEFAULT_MODEL,
    PERPLEXITY_TIMEOUT_SECONDS,
)


@dataclass(slots=True)
class LedgerSettings:
    """Token ledger settings."""

    initial_balance: int = 0


@dataclass(slots=True)
class AiSettings:
    """AI provider settings; the OpenAI-compatible provider is primary when both are set."""

    openai_api_key: str = ""
    openai_model: str = OPENAI_DEFAULT_MODEL
    openai_base_url: str = OPENAI_BASE_URL
    openai_timeout_seconds: float = OPENAI_TIMEOUT_SECONDS
    perplexity_api_key: str = ""
    perplexity_model: str = PERPLEXITY_DEFAULT_MODEL
    perplexity_base_url: str = PERPLEXITY_BASE_URL
    perplexity_timeout_seconds: float = PERPLEXITY_TIMEOUT_SECONDS
    max_retries: int = 1


@dataclass(slots=True)
class WorkerSettings:
    """Queue picker and pipeline processor settings."""

    executor_id: str = field(default_factory=lambda: f"picker-{socket.gethostname()}")
    poll_interval_seconds: float = 2.0
    max_workers: int = 2
    stale_after_seconds: int = 600
    reap_on_start: bool = True
    cancel_poll_seconds: float = 0.0
    subscription_poll_seconds: float = 1.0
    notifications_enabled: bool = True


@dataclass(slots=True)
class UserContextSettings:
    """User context settings."""

    user_id: str = "default_user"
    user_name: str = "Default User"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".resume_forge.db")
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "WARNING"
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    ai: AiSettings = field(default_factory=AiSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        worker_defaults = WorkerSettings()
        return cls(
            db_path=db_path or Path(os.getenv("RESUME_FORGE_DB_PATH", ".resume_forge.db")),
            sqlite_busy_timeout_ms=int(os.getenv("RESUME_FORGE_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("RESUME_FORGE_LOG_LEVEL", "WARNING").upper(),
            ledger=LedgerSettings(
                initial_balance=int(os.getenv("RESUME_FORGE_INITIAL_BALANCE", "0")),
            ),
            ai=AiSettings(
                openai_api_key=os.getenv("RESUME_FORGE_OPENAI_API_KEY", ""),
                openai_model=os.getenv("RESUME_FORGE_OPENAI_MODEL", OPENAI_DEFAULT_MODEL),
                openai_base_url=os.getenv("RESUME_FORGE_OPENAI_BASE_URL", OPENAI_BASE_URL),
                openai_timeout_seconds=float(
                    os.getenv("RESUME_FORGE_OPENAI_TIMEOUT_SECONDS", str(OPENAI_TIMEOUT_SECONDS)),
                ),
                perplexity_api_key=os.getenv("RESUME_FORGE_PERPLEXITY_API_KEY", ""),
                perplexity_model=os.getenv(
                    "RESUME_FORGE_PERPLEXITY_MODEL",
                    PERPLEXITY_DEFAULT_MODEL,
                ),
                perplexity_base_url=os.getenv(
                    "RESUME_FORGE_PERPLEXITY_BASE_URL",
                    PERPLEXITY_BASE_URL,
                ),
                perplexity_timeout_seconds=float(
                    os.getenv(
                        "RESUME_FORGE_PERPLEXITY_TIMEOUT_SECONDS",
                        str(PERPLEXITY_TIMEOUT_SECONDS),
                    ),
                ),
                max_retries=int(os.getenv("RESUME_FORGE_AI_MAX_RETRIES", "1")),
            ),
            worker=WorkerSettings(
                executor_id=os.getenv("RESUME_FORGE_EXECUTOR_ID", worker_defaults.executor_id),
                poll_interval_seconds=float(
                    os.getenv("RESUME_FORGE_WORKER_POLL_INTERVAL_SECONDS", "2.0"),
                ),
                max_workers=int(os.getenv("RESUME_FORGE_WORKER_MAX_WORKERS", "2")),
                stale_after_seconds=int(os.getenv("RESUME_FORGE_STALE_AFTER_SECONDS", "600")),
                reap_on_start=_env_bool("RESUME_FORGE_REAP_ON_START", default=True),
                cancel_poll_seconds=float(
                    os.getenv("RESUME_FORGE_CANCEL_POLL_SECONDS", "0.0"),
                ),
                subscription_poll_seconds=float(
                    os.getenv("RESUME_FORGE_SUBSCRIPTION_POLL_SECONDS", "1.0"),
                ),
                notifications_enabled=_env_bool(
                    "RESUME_FORGE_NOTIFICATIONS_ENABLED",
                    default=True,
                ),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("RESUME_FORGE_USER_ID", "default_user"),
                user_name=os.getenv("RESUME_FORGE_USER_NAME", "Default User"),
            ),
        )

    def validate_for_ai(self) -> None:
        """Raise configuration error if no AI provider is usable."""

        if not self.ai.openai_api_key and not self.ai.perplexity_api_key:
            raise ValueError(
                "No AI provider configured. "
                "Set RESUME_FORGE_OPENAI_API_KEY and/or RESUME_FORGE_PERPLEXITY_API_KEY.",
            )
        for name, url in (
            ("RESUME_FORGE_OPENAI_BASE_URL", self.ai.openai_base_url),
            ("RESUME_FORGE_PERPLEXITY_BASE_URL", self.ai.perplexity_base_url),
        ):
            _validate_base_url(name, url)
        if self.ai.openai_timeout_seconds <= 0 or self.ai.perplexity_timeout_seconds <= 0:
            raise ValueError("AI provider timeouts must be > 0 seconds.")
        if self.ai.max_retries < 0:
            raise ValueError("RESUME_FORGE_AI_MAX_RETRIES must be >= 0.")

    def validate_for_worker(self) -> None:
        """Raise configuration error for unusable executor settings."""

        if self.worker.max_workers <= 0:
            raise ValueError("RESUME_FORGE_WORKER_MAX_WORKERS must be > 0.")
        if self.worker.poll_interval_seconds <= 0:
            raise ValueError("RESUME_FORGE_WORKER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.worker.stale_after_seconds <= 0:
            raise ValueError("RESUME_FORGE_STALE_AFTER_SECONDS must be > 0.")
        if self.worker.cancel_poll_seconds < 0:
            raise ValueError("RESUME_FORGE_CANCEL_POLL_SECONDS must be >= 0.")
        if not self.worker.executor_id.strip():
            raise ValueError("RESUME_FORGE_EXECUTOR_ID must not be empty.")


def _validate_base_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")

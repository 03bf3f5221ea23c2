"""Runtime configuration for the social jobs worker."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse


def default_worker_id() -> str:
    return f"social-{secrets.token_hex(3)}"


@dataclass(slots=True)
class WorkerSettings:
    """Queue worker timing and retry settings (seconds)."""

    worker_id: str = field(default_factory=default_worker_id)
    idle_delay_seconds: float = 1.5
    error_delay_seconds: float = 1.2
    backoff_base_seconds: float = 2.5
    backoff_cap_seconds: float = 30.0
    stuck_after_seconds: float = 600.0
    reap_interval_seconds: float = 30.0
    max_attempts: int = 3
    sqlite_busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class GenerationSettings:
    """Content generator settings."""

    api_key: str = ""
    model: str = "gpt-4.1-mini"
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 60.0
    dry_run: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".social_jobs.db")
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("SOCIAL_DB_PATH", ".social_jobs.db")),
            worker=WorkerSettings(
                worker_id=os.getenv("SOCIAL_WORKER_ID", "").strip() or default_worker_id(),
                idle_delay_seconds=_env_ms("SOCIAL_SLEEP_IDLE_MS", 1_500),
                error_delay_seconds=_env_ms("SOCIAL_SLEEP_ERROR_MS", 1_200),
                backoff_base_seconds=_env_ms("SOCIAL_BACKOFF_BASE_MS", 2_500),
                backoff_cap_seconds=_env_ms("SOCIAL_BACKOFF_CAP_MS", 30_000),
                stuck_after_seconds=_env_ms("SOCIAL_STUCK_AFTER_MS", 600_000),
                reap_interval_seconds=_env_ms("SOCIAL_REAP_INTERVAL_MS", 30_000),
                max_attempts=_env_int("SOCIAL_MAX_ATTEMPTS", 3),
                sqlite_busy_timeout_ms=_env_int("SOCIAL_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            ),
            generation=GenerationSettings(
                api_key=os.getenv("OPENAI_API_KEY", "").strip(),
                model=os.getenv("OPENAI_MODEL", "gpt-4.1-mini").strip() or "gpt-4.1-mini",
                base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").strip(),
                timeout_seconds=_env_float("SOCIAL_GENERATION_TIMEOUT_SECONDS", 60.0),
                dry_run=_env_bool("AI_DRY_RUN", default=False),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the worker cannot run with."""

        worker = self.worker
        if worker.max_attempts < 1:
            raise ValueError("SOCIAL_MAX_ATTEMPTS must be >= 1.")
        if worker.stuck_after_seconds <= 0:
            raise ValueError("SOCIAL_STUCK_AFTER_MS must be > 0.")
        if worker.reap_interval_seconds < 0:
            raise ValueError("SOCIAL_REAP_INTERVAL_MS must be >= 0.")
        if worker.idle_delay_seconds < 0:
            raise ValueError("SOCIAL_SLEEP_IDLE_MS must be >= 0.")
        if worker.error_delay_seconds < 0:
            raise ValueError("SOCIAL_SLEEP_ERROR_MS must be >= 0.")
        if worker.backoff_base_seconds < 0:
            raise ValueError("SOCIAL_BACKOFF_BASE_MS must be >= 0.")
        if worker.backoff_cap_seconds < 0:
            raise ValueError("SOCIAL_BACKOFF_CAP_MS must be >= 0.")
        if worker.sqlite_busy_timeout_ms <= 0:
            raise ValueError("SOCIAL_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.generation.timeout_seconds <= 0:
            raise ValueError("SOCIAL_GENERATION_TIMEOUT_SECONDS must be > 0.")

    def validate_for_generation(self) -> None:
        """Raise configuration error if live generation cannot be configured."""

        self.validate()
        if self.generation.dry_run:
            return
        if not self.generation.api_key:
            raise ValueError("OPENAI_API_KEY is required (or set AI_DRY_RUN=1).")
        parsed = urlparse(self.generation.base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid OPENAI_BASE_URL: "
                f"{self.generation.base_url!r}. Expected an absolute http(s) URL.",
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {raw!r}") from error


def _env_ms(name: str, default_ms: int) -> float:
    return _env_int(name, default_ms) / 1000.0


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")

"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from social_jobs.generation import GenerationRequest, GenerationResult
from social_jobs.queue.models import SocialKit
from social_jobs.queue.outputs import OutputRepository
from social_jobs.queue.repository import JobRepository
from social_jobs.storage.common import open_sqlite_connection

_ENV_VARS = (
    "SOCIAL_DB_PATH",
    "SOCIAL_WORKER_ID",
    "SOCIAL_SLEEP_IDLE_MS",
    "SOCIAL_SLEEP_ERROR_MS",
    "SOCIAL_BACKOFF_BASE_MS",
    "SOCIAL_BACKOFF_CAP_MS",
    "SOCIAL_STUCK_AFTER_MS",
    "SOCIAL_REAP_INTERVAL_MS",
    "SOCIAL_MAX_ATTEMPTS",
    "SOCIAL_SQLITE_BUSY_TIMEOUT_MS",
    "SOCIAL_GENERATION_TIMEOUT_SECONDS",
    "SOCIAL_LOG_LEVEL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "AI_DRY_RUN",
)


class ScriptedGenerator:
    """Generator that replays a script of kits and exceptions."""

    def __init__(self, *steps: SocialKit | Exception) -> None:
        self.steps = list(steps)
        self.requests: list[GenerationRequest] = []

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        return GenerationResult(kit=step, model="scripted-model")


def make_kit(title: str = "Spring launch") -> SocialKit:
    return SocialKit(
        title=title,
        hook=f"{title} hook",
        caption=f"{title} caption",
        cta="Book a demo",
        hashtags=["#launch", "#crm"],
        image_prompts=["Bright studio shot of a laptop"],
    )


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "social.db"


@pytest.fixture()
def repository(db_path: Path) -> Iterator[JobRepository]:
    repository = JobRepository(db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture()
def outputs(db_path: Path, repository: JobRepository) -> Iterator[OutputRepository]:
    outputs = OutputRepository(db_path)
    try:
        yield outputs
    finally:
        outputs.close()


def age_lock(db_path: Path, job_id: str, *, age: timedelta) -> None:
    """Backdate ``locked_at`` as if the owning worker stalled ``age`` ago."""

    locked_at = (datetime.now(tz=UTC) - age).replace(tzinfo=None)
    connection = open_sqlite_connection(db_path)
    try:
        connection.execute(
            "UPDATE social_jobs SET locked_at = ? WHERE job_id = ?",
            (locked_at.strftime("%Y-%m-%d %H:%M:%S.%f"), job_id),
        )
        connection.commit()
    finally:
        connection.close()

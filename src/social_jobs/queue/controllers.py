"""Controllers for social-jobs CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from social_jobs.config import Settings
from social_jobs.generation import ContentGenerator, DryRunGenerator, OpenAIChatGenerator
from social_jobs.queue.backoff import BackoffPolicy
from social_jobs.queue.dispatcher import JobDispatcher
from social_jobs.queue.handlers import default_handlers
from social_jobs.queue.models import (
    JobCreate,
    JobStatus,
    LeadWrite,
    VerticalProfileWrite,
)
from social_jobs.queue.outputs import OutputRepository
from social_jobs.queue.repository import JobRepository
from social_jobs.queue.worker import SocialJobsWorker


@dataclass(slots=True)
class JobEnqueueCommand:
    """CLI input for job enqueue."""

    db_path: Path | None
    job_type: str
    org_id: str
    lead_id: str | None
    activity_id: str | None
    max_attempts: int | None
    payload_json: str | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_jobs: int | None
    max_idle_polls: int | None = None


@dataclass(slots=True)
class ListJobsCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class InspectJobCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class RetryJobCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class ReapCommand:
    """CLI input for a one-off stuck job sweep."""

    db_path: Path | None
    stuck_after_seconds: float | None


@dataclass(slots=True)
class StatusCommand:
    db_path: Path | None


@dataclass(slots=True)
class ListOutputsCommand:
    db_path: Path | None
    org_id: str | None
    source_id: str | None
    limit: int


@dataclass(slots=True)
class ProfileSetCommand:
    """CLI input for vertical profile create/update."""

    db_path: Path | None
    vertical_key: str
    prompt_system: str | None
    prompt_user_prefix: str | None
    tone: str | None
    audience: str | None
    brand_rules_json: str | None
    image_style_rules: tuple[str, ...]
    hashtag_seed: tuple[str, ...]
    cta_library: tuple[str, ...]
    active: bool = True


@dataclass(slots=True)
class LeadAddCommand:
    db_path: Path | None
    org_id: str
    lead_id: str
    name: str | None
    company: str | None
    city: str | None
    country: str | None
    notes: str | None
    source: str | None


class SocialJobsCliController:
    """Coordinates queue, worker, and inspection CLI operations."""

    def enqueue(self, command: JobEnqueueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        payload = _parse_json_object(command.payload_json, option="--payload")
        with _job_repository(settings) as repository:
            job = repository.enqueue_job(
                JobCreate(
                    job_type=command.job_type,
                    org_id=command.org_id,
                    lead_id=command.lead_id,
                    activity_id=command.activity_id,
                    max_attempts=command.max_attempts,
                    payload=payload,
                ),
            )
        return [
            "Job enqueued: "
            f"job_id={job.job_id} type={job.job_type} status={job.status.value} "
            f"max_attempts={job.max_attempts}",
        ]

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_generation()
        worker_settings = settings.worker
        with (
            _job_repository(settings) as repository,
            _output_repository(settings) as outputs,
            _generator(settings) as generator,
        ):
            worker = SocialJobsWorker(
                repository=repository,
                dispatcher=JobDispatcher(default_handlers(outputs=outputs, generator=generator)),
                worker_id=worker_settings.worker_id,
                backoff=BackoffPolicy(
                    base_seconds=worker_settings.backoff_base_seconds,
                    cap_seconds=worker_settings.backoff_cap_seconds,
                ),
                idle_delay_seconds=worker_settings.idle_delay_seconds,
                error_delay_seconds=worker_settings.error_delay_seconds,
                stuck_after=timedelta(seconds=worker_settings.stuck_after_seconds),
                reap_interval_seconds=worker_settings.reap_interval_seconds,
            )
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )

        return [
            f"Worker summary ({worker_settings.worker_id}): "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} retried={summary.retried} "
            f"reaped={summary.reaped} lost_locks={summary.lost_locks} "
            f"idle_polls={summary.idle_polls} errors={summary.errors}",
        ]

    def list_jobs(self, command: ListJobsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = _parse_status(command.status)
        with _job_repository(settings) as repository:
            jobs = repository.list_jobs(status=status_filter, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            lines.append(
                f"  {job.job_id} type={job.job_type} status={job.status.value} "
                f"org={job.org_id} attempts={job.attempts}/{job.max_attempts} "
                f"created_at={job.created_at.isoformat()}",
            )
        return lines

    def inspect_job(self, command: InspectJobCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _job_repository(settings) as repository:
            details = repository.get_job_details(job_id=command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        lines = [
            f"Job: {job.job_id}",
            f"Type: {job.job_type}",
            f"Org: {job.org_id}",
            f"Status: {job.status.value}",
            f"Attempts: {job.attempts}/{job.max_attempts}",
            f"Locked by: {job.locked_by or '-'}",
            f"Locked at: {job.locked_at.isoformat() if job.locked_at else '-'}",
            f"Last error: {job.last_error or '-'}",
            f"Last trace: {job.last_trace_id or '-'}",
            f"Payload: {json.dumps(job.payload, ensure_ascii=False, sort_keys=True)}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def retry_job(self, command: RetryJobCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _job_repository(settings) as repository:
            job = repository.retry_job(job_id=command.job_id)
        return [f"Job re-queued: {job.job_id} attempts={job.attempts}/{job.max_attempts}"]

    def reap(self, command: ReapCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        stuck_after_seconds = (
            command.stuck_after_seconds
            if command.stuck_after_seconds is not None
            else settings.worker.stuck_after_seconds
        )
        with _job_repository(settings) as repository:
            reaped = repository.reap_stuck_jobs(stuck_after=timedelta(seconds=stuck_after_seconds))
        return [f"Requeued stuck jobs: {reaped} (stuck_after={stuck_after_seconds:g}s)"]

    def status(self, command: StatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _job_repository(settings) as repository:
            counts = repository.count_by_status()
        return [f"Queue status ({settings.db_path}):"] + [
            f"  {status.value}={counts[status]}" for status in JobStatus
        ]

    def list_outputs(self, command: ListOutputsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _output_repository(settings) as outputs:
            rows = outputs.list_outputs(
                org_id=command.org_id,
                source_id=command.source_id,
                limit=command.limit,
            )

        lines = [f"Outputs: {len(rows)}"]
        for row in rows:
            lines.append(
                f"  {row.output_id} key={row.key} vertical={row.vertical_key} "
                f"status={row.status} title={row.title!r} "
                f"trace_id={row.meta.get('trace_id', '-')} "
                f"updated_at={row.updated_at.isoformat()}",
            )
        return lines

    def set_profile(self, command: ProfileSetCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        brand_rules = _parse_json_object(command.brand_rules_json, option="--brand-rules")
        with _output_repository(settings) as outputs:
            profile = outputs.upsert_vertical_profile(
                VerticalProfileWrite(
                    vertical_key=command.vertical_key,
                    prompt_system=command.prompt_system,
                    prompt_user_prefix=command.prompt_user_prefix,
                    tone=command.tone,
                    audience=command.audience,
                    brand_rules=brand_rules,
                    image_style_rules=list(command.image_style_rules),
                    hashtag_seed=list(command.hashtag_seed),
                    cta_library=list(command.cta_library),
                    is_active=command.active,
                ),
            )
        return [
            f"Vertical profile saved: {profile.vertical_key} "
            f"active={profile.is_active} updated_at={profile.updated_at.isoformat()}",
        ]

    def add_lead(self, command: LeadAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _output_repository(settings) as outputs:
            lead = outputs.add_lead(
                LeadWrite(
                    lead_id=command.lead_id,
                    org_id=command.org_id,
                    name=command.name,
                    company=command.company,
                    city=command.city,
                    country=command.country,
                    notes=command.notes,
                    source=command.source,
                ),
            )
        return [f"Lead added: {lead.org_id}/{lead.lead_id}"]


def _parse_status(value: str | None) -> JobStatus | None:
    if value is None:
        return None
    return JobStatus(value.strip().lower())


def _parse_json_object(raw: str | None, *, option: str) -> dict[str, Any]:
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ValueError(f"{option} must be valid JSON: {error}") from error
    if not isinstance(parsed, dict):
        raise ValueError(f"{option} must be a JSON object.")
    return parsed


@contextmanager
def _job_repository(settings: Settings) -> Iterator[JobRepository]:
    repository = JobRepository(
        db_path=settings.db_path,
        default_max_attempts=settings.worker.max_attempts,
        sqlite_busy_timeout_ms=settings.worker.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _output_repository(settings: Settings) -> Iterator[OutputRepository]:
    repository = OutputRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.worker.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _generator(settings: Settings) -> Iterator[ContentGenerator]:
    generation = settings.generation
    if generation.dry_run:
        yield DryRunGenerator()
        return
    with OpenAIChatGenerator(
        api_key=generation.api_key,
        model=generation.model,
        base_url=generation.base_url,
        timeout_seconds=generation.timeout_seconds,
    ) as generator:
        yield generator

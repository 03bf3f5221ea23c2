"""Persistent job queue repository shared by all worker processes."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import case, func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from social_jobs.queue.models import (
    JobCreate,
    JobDetails,
    JobEventView,
    JobStatus,
    JobView,
)
from social_jobs.storage.alembic_runner import upgrade_head
from social_jobs.storage.common import (
    build_sqlite_engine,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from social_jobs.storage.sqlmodel_models import SocialJob, SocialJobEvent

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 2000
REAPED_ERROR = "requeued: stuck running timeout"


class JobRepository:
    """Queue persistence facade backed by SQLModel + SQLite.

    Every state transition is a single conditional UPDATE. Claiming is guarded
    by ``status = 'queued'``; finalizing is guarded by ``status = 'running'``
    plus ``locked_by = <worker>``, so a worker never mutates a job it lost to
    the reaper.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        default_max_attempts: int = 3,
        sqlite_busy_timeout_ms: int = 5_000,
    ) -> None:
        if default_max_attempts < 1:
            raise ValueError("default_max_attempts must be >= 1")
        self.db_path = db_path
        self.default_max_attempts = default_max_attempts
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def enqueue_job(self, payload: JobCreate) -> JobView:
        """Create a queued job."""

        if not payload.job_type.strip():
            raise ValueError("job_type cannot be empty.")
        if not payload.org_id.strip():
            raise ValueError("org_id cannot be empty.")
        max_attempts = (
            payload.max_attempts
            if payload.max_attempts is not None
            else self.default_max_attempts
        )
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        now = utc_now()
        job_id = payload.job_id or str(uuid4())
        with Session(self.engine) as session:
            row = SocialJob(
                job_id=job_id,
                org_id=payload.org_id,
                lead_id=payload.lead_id,
                activity_id=payload.activity_id,
                job_type=payload.job_type,
                status=JobStatus.QUEUED.value,
                attempts=0,
                max_attempts=max_attempts,
                payload_json=json.dumps(payload.payload, ensure_ascii=False, sort_keys=True),
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="enqueued",
                status_from=None,
                status_to=JobStatus.QUEUED,
                details={"job_type": payload.job_type, "max_attempts": max_attempts},
            )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def claim_next_job(self, *, worker_id: str) -> JobView | None:
        """Claim the oldest queued job for ``worker_id``.

        One candidate per call: losing the race returns ``None`` instead of
        trying the next row.
        """

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            candidate = session.exec(
                select(SocialJob)
                .where(SocialJob.status == JobStatus.QUEUED.value)
                .order_by(col(SocialJob.created_at).asc(), col(SocialJob.job_id).asc())
                .limit(1),
            ).one_or_none()
            if candidate is None:
                return None
            job_id = candidate.job_id

            result = session.exec(
                sa_update(SocialJob)
                .where(
                    col(SocialJob.job_id) == job_id,
                    col(SocialJob.status) == JobStatus.QUEUED.value,
                )
                .values(
                    status=JobStatus.RUNNING.value,
                    locked_by=worker_id,
                    locked_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None

            claimed = session.exec(
                select(SocialJob)
                .where(SocialJob.job_id == job_id)
                .execution_options(populate_existing=True),
            ).one_or_none()
            if (
                claimed is None
                or claimed.status != JobStatus.RUNNING.value
                or claimed.locked_by != worker_id
            ):
                session.rollback()
                return None

            self._add_event(
                session=session,
                job_id=job_id,
                event_type="claimed",
                status_from=JobStatus.QUEUED,
                status_to=JobStatus.RUNNING,
                details={"worker_id": worker_id, "attempts": claimed.attempts},
            )
            session.commit()
            session.refresh(claimed)
            return _to_job_view(claimed)

    def reap_stuck_jobs(self, *, stuck_after: timedelta) -> int:
        """Return running jobs whose lock is older than ``stuck_after`` to the queue."""

        if stuck_after.total_seconds() <= 0:
            raise ValueError("stuck_after must be > 0")

        now = utc_now()
        cutoff = to_db_datetime(now - stuck_after)
        reaped = 0
        with Session(self.engine) as session:
            stuck_rows = session.exec(
                select(SocialJob).where(
                    SocialJob.status == JobStatus.RUNNING.value,
                    col(SocialJob.locked_at) < cutoff,
                ),
            ).all()
            stuck = [(row.job_id, row.locked_by, row.locked_at) for row in stuck_rows]

            for job_id, locked_by, locked_at in stuck:
                result = session.exec(
                    sa_update(SocialJob)
                    .where(
                        col(SocialJob.job_id) == job_id,
                        col(SocialJob.status) == JobStatus.RUNNING.value,
                        col(SocialJob.locked_at) < cutoff,
                    )
                    .values(
                        status=JobStatus.QUEUED.value,
                        locked_by=None,
                        locked_at=None,
                        last_error=REAPED_ERROR,
                        last_error_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    continue
                reaped += 1
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="reaped",
                    status_from=JobStatus.RUNNING,
                    status_to=JobStatus.QUEUED,
                    details={
                        "previous_locked_by": locked_by,
                        "previous_locked_at": (
                            to_utc_aware_datetime(locked_at).isoformat()
                            if locked_at is not None
                            else None
                        ),
                        "stuck_after_seconds": stuck_after.total_seconds(),
                    },
                )
                logger.warning(
                    "Requeued stuck job %s (locked_by=%s locked_at=%s).",
                    job_id,
                    locked_by,
                    locked_at,
                )
            session.commit()
        return reaped

    def complete_job(self, *, job_id: str, worker_id: str, trace_id: str) -> bool:
        """Mark a job this worker still owns as done.

        The finished execution counts toward ``attempts`` just like a failed
        one, so a job that succeeds on its third try reports ``attempts=3``.
        """

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(SocialJob)
                .where(*_owned_by(job_id=job_id, worker_id=worker_id))
                .values(
                    status=JobStatus.DONE.value,
                    attempts=col(SocialJob.attempts) + 1,
                    locked_by=None,
                    locked_at=None,
                    last_trace_id=trace_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="succeeded",
                status_from=JobStatus.RUNNING,
                status_to=JobStatus.DONE,
                details={"worker_id": worker_id, "trace_id": trace_id},
            )
            session.commit()
            return True

    def record_failure(
        self,
        *,
        job_id: str,
        worker_id: str,
        error: str,
        trace_id: str,
    ) -> JobView | None:
        """Count one handler failure and requeue or fail the job.

        The attempt increment and the retry-vs-terminal decision happen in the
        same UPDATE. Returns ``None`` when this worker no longer owns the job.
        """

        now = to_db_datetime(utc_now())
        error_text = _truncate_error(error)
        next_attempts = col(SocialJob.attempts) + 1
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(SocialJob)
                .where(*_owned_by(job_id=job_id, worker_id=worker_id))
                .values(
                    attempts=next_attempts,
                    status=case(
                        (next_attempts >= col(SocialJob.max_attempts), JobStatus.FAILED.value),
                        else_=JobStatus.QUEUED.value,
                    ),
                    locked_by=None,
                    locked_at=None,
                    last_error=error_text,
                    last_error_at=now,
                    last_trace_id=trace_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                session.rollback()
                return None

            row = session.exec(
                select(SocialJob)
                .where(SocialJob.job_id == job_id)
                .execution_options(populate_existing=True),
            ).one()
            status_to = JobStatus(row.status)
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="failed" if status_to == JobStatus.FAILED else "retry_scheduled",
                status_from=JobStatus.RUNNING,
                status_to=status_to,
                details={
                    "worker_id": worker_id,
                    "trace_id": trace_id,
                    "attempts": row.attempts,
                    "max_attempts": row.max_attempts,
                    "error": error_text,
                },
            )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def retry_job(self, *, job_id: str) -> JobView:
        """Manual operator retry for a failed job with a fresh attempt budget."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.exec(
                select(SocialJob).where(SocialJob.job_id == job_id),
            ).one_or_none()
            if row is None:
                raise RuntimeError(f"Job not found: {job_id}")
            if row.status != JobStatus.FAILED.value:
                raise RuntimeError(f"Only failed jobs can be retried manually, got {row.status}.")

            result = session.exec(
                sa_update(SocialJob)
                .where(
                    col(SocialJob.job_id) == job_id,
                    col(SocialJob.status) == JobStatus.FAILED.value,
                )
                .values(
                    status=JobStatus.QUEUED.value,
                    attempts=0,
                    locked_by=None,
                    locked_at=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                raise RuntimeError(
                    "Job state changed concurrently while retrying; "
                    f"please retry command (job_id={job_id}).",
                )
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="manual_retry",
                status_from=JobStatus.FAILED,
                status_to=JobStatus.QUEUED,
                details={},
            )
            session.commit()

        job = self.get_job(job_id=job_id)
        if job is None:
            raise RuntimeError(f"Job not found: {job_id}")
        return job

    def get_job(self, *, job_id: str) -> JobView | None:
        with Session(self.engine) as session:
            row = session.exec(select(SocialJob).where(SocialJob.job_id == job_id)).one_or_none()
            return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[JobView]:
        """List recent jobs, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = select(SocialJob).order_by(col(SocialJob.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(SocialJob.status == status.value)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def count_by_status(self) -> dict[JobStatus, int]:
        counts = dict.fromkeys(JobStatus, 0)
        with Session(self.engine) as session:
            rows = session.exec(
                select(SocialJob.status, func.count()).group_by(SocialJob.status),
            ).all()
        for status, count in rows:
            counts[JobStatus(status)] = int(count)
        return counts

    def get_job_details(self, *, job_id: str) -> JobDetails | None:
        """Return job details with event stream."""

        with Session(self.engine) as session:
            job = session.exec(select(SocialJob).where(SocialJob.job_id == job_id)).one_or_none()
            if job is None:
                return None

            event_rows = session.exec(
                select(SocialJobEvent)
                .where(SocialJobEvent.job_id == job_id)
                .order_by(col(SocialJobEvent.created_at).asc(), col(SocialJobEvent.id).asc()),
            ).all()
            view = _to_job_view(job)

        events: list[JobEventView] = []
        for row in event_rows:
            details = {}
            if row.details_json:
                parsed = json.loads(row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                JobEventView(
                    event_id=row.id or 0,
                    job_id=row.job_id,
                    event_type=row.event_type,
                    status_from=JobStatus(row.status_from) if row.status_from else None,
                    status_to=JobStatus(row.status_to) if row.status_to else None,
                    created_at=to_utc_aware_datetime(row.created_at),
                    details=details,
                ),
            )
        return JobDetails(job=view, events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None,
        status_to: JobStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            SocialJobEvent(
                job_id=job_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _owned_by(*, job_id: str, worker_id: str) -> tuple[object, ...]:
    return (
        col(SocialJob.job_id) == job_id,
        col(SocialJob.status) == JobStatus.RUNNING.value,
        col(SocialJob.locked_by) == worker_id,
    )


def _truncate_error(error: str) -> str:
    text = error.strip() or "unknown error"
    if len(text) <= MAX_ERROR_CHARS:
        return text
    return text[: MAX_ERROR_CHARS - 3] + "..."


def _load_payload(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"_value": parsed}


def _to_job_view(row: SocialJob) -> JobView:
    return JobView(
        job_id=row.job_id,
        org_id=row.org_id,
        lead_id=row.lead_id,
        activity_id=row.activity_id,
        job_type=row.job_type,
        status=JobStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        payload=_load_payload(row.payload_json),
        locked_at=optional_utc(row.locked_at),
        locked_by=row.locked_by,
        last_error=row.last_error,
        last_error_at=optional_utc(row.last_error_at),
        last_trace_id=row.last_trace_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )

"""Queue worker: reap, claim, dispatch, finalize."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from uuid import uuid4

from social_jobs.queue.backoff import BackoffPolicy
from social_jobs.queue.dispatcher import JobDispatcher
from social_jobs.queue.models import JobStatus, JobView
from social_jobs.queue.repository import JobRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    reaped: int = 0
    lost_locks: int = 0
    idle_polls: int = 0
    errors: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.retried += other.retried
        self.reaped += other.reaped
        self.lost_locks += other.lost_locks
        self.idle_polls += other.idle_polls
        self.errors += other.errors


class SocialJobsWorker:
    """Consumes queued jobs and executes them via the dispatcher.

    The stop flag is only honoured between jobs and while sleeping: a job that
    has been claimed always runs to its finalize step.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobRepository,
        dispatcher: JobDispatcher,
        worker_id: str,
        backoff: BackoffPolicy | None = None,
        idle_delay_seconds: float = 1.5,
        error_delay_seconds: float = 1.2,
        stuck_after: timedelta = timedelta(minutes=10),
        reap_interval_seconds: float = 30.0,
    ) -> None:
        self.repository = repository
        self.dispatcher = dispatcher
        self.worker_id = worker_id
        self.backoff = backoff or BackoffPolicy()
        self.idle_delay_seconds = idle_delay_seconds
        self.error_delay_seconds = error_delay_seconds
        self.stuck_after = stuck_after
        self.reap_interval_seconds = reap_interval_seconds
        self._last_reap_at: float | None = None
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Ask the loop to exit at the next claim boundary."""

        self._stop_requested = True

    def run_once(self) -> WorkerRunSummary:
        """Reap if due, then process at most one job from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        summary.reaped = self._reap_if_due()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        job = self.repository.claim_next_job(worker_id=self.worker_id)
        if job is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        self._execute(job=job, summary=summary)
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = None,
    ) -> WorkerRunSummary:
        """Run until a stop is requested.

        Args:
            max_jobs: Stop after processing this many jobs (None = unlimited).
            max_idle_polls: Stop after this many consecutive empty polls
                (None = keep polling).
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        logger.info("Worker %s started", self.worker_id)
        with self._signal_handlers():
            while not self._stop_requested:
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    break

                try:
                    summary = self.run_once()
                except Exception:  # noqa: BLE001
                    aggregate.errors += 1
                    logger.exception("Worker %s loop error", self.worker_id)
                    self._sleep_with_stop(self.error_delay_seconds)
                    continue

                aggregate.add(summary)
                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        break
                    self._sleep_with_stop(self.idle_delay_seconds)
                    continue
                consecutive_idle = 0

        logger.info(
            "Worker %s stopped (processed=%d succeeded=%d retried=%d failed=%d)",
            self.worker_id,
            aggregate.processed,
            aggregate.succeeded,
            aggregate.retried,
            aggregate.failed,
        )
        return aggregate

    def _reap_if_due(self) -> int:
        now = time.monotonic()
        if (
            self._last_reap_at is not None
            and now - self._last_reap_at < self.reap_interval_seconds
        ):
            return 0
        self._last_reap_at = now
        reaped = self.repository.reap_stuck_jobs(stuck_after=self.stuck_after)
        if reaped:
            logger.info("Worker %s requeued %d stuck job(s)", self.worker_id, reaped)
        return reaped

    def _execute(self, *, job: JobView, summary: WorkerRunSummary) -> None:
        trace_id = str(uuid4())
        logger.info(
            "Worker %s claimed job %s type=%s attempts=%d/%d trace_id=%s",
            self.worker_id,
            job.job_id,
            job.job_type,
            job.attempts,
            job.max_attempts,
            trace_id,
        )
        try:
            self.dispatcher.dispatch(job, trace_id=trace_id)
        except Exception as error:  # noqa: BLE001
            self._handle_failure(job=job, error=error, trace_id=trace_id, summary=summary)
            return

        if self.repository.complete_job(
            job_id=job.job_id,
            worker_id=self.worker_id,
            trace_id=trace_id,
        ):
            summary.succeeded = 1
            logger.info("Job %s done (trace_id=%s)", job.job_id, trace_id)
            return
        summary.lost_locks = 1
        logger.warning(
            "Job %s finished but worker %s no longer owns it; result kept, status untouched "
            "(trace_id=%s)",
            job.job_id,
            self.worker_id,
            trace_id,
        )

    def _handle_failure(
        self,
        *,
        job: JobView,
        error: Exception,
        trace_id: str,
        summary: WorkerRunSummary,
    ) -> None:
        message = str(error) or type(error).__name__
        updated = self.repository.record_failure(
            job_id=job.job_id,
            worker_id=self.worker_id,
            error=message,
            trace_id=trace_id,
        )
        if updated is None:
            summary.lost_locks = 1
            logger.warning(
                "Job %s failed after worker %s lost ownership: %s (trace_id=%s)",
                job.job_id,
                self.worker_id,
                message,
                trace_id,
            )
            return

        if updated.status == JobStatus.FAILED:
            summary.failed = 1
            logger.error(
                "Job %s failed permanently after %d/%d attempts: %s (trace_id=%s)",
                job.job_id,
                updated.attempts,
                updated.max_attempts,
                message,
                trace_id,
            )
            return

        summary.retried = 1
        delay = self.backoff.delay(updated.attempts)
        logger.warning(
            "Job %s attempt %d/%d failed: %s; retry after %.1fs (trace_id=%s)",
            job.job_id,
            updated.attempts,
            updated.max_attempts,
            message,
            delay,
            trace_id,
        )
        self._sleep_with_stop(delay)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Worker %s received %s, stopping after current job", self.worker_id, name)
            self.request_stop()

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)

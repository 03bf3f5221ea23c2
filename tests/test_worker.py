from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import allure
import pytest
from conftest import ScriptedGenerator, age_lock, make_kit
from sqlalchemy.exc import OperationalError

from social_jobs.generation import GenerationSchemaError
from social_jobs.queue.backoff import BackoffPolicy
from social_jobs.queue.dispatcher import HandlerResult, JobDispatcher
from social_jobs.queue.handlers import default_handlers
from social_jobs.queue.models import JobCreate, JobPayload, JobStatus, JobView, OutputKey
from social_jobs.queue.outputs import OutputRepository
from social_jobs.queue.repository import JobRepository
from social_jobs.queue.worker import SocialJobsWorker

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Worker Loop"),
]


def _worker(
    repository: JobRepository,
    dispatcher: JobDispatcher,
    *,
    worker_id: str = "worker-1",
    **overrides,
) -> SocialJobsWorker:
    options = {
        "backoff": BackoffPolicy(base_seconds=0.0, cap_seconds=0.0),
        "idle_delay_seconds": 0.0,
        "error_delay_seconds": 0.0,
        "reap_interval_seconds": 3600.0,
    }
    options.update(overrides)
    return SocialJobsWorker(
        repository=repository,
        dispatcher=dispatcher,
        worker_id=worker_id,
        **options,
    )


def _dispatcher(outputs: OutputRepository, generator: ScriptedGenerator) -> JobDispatcher:
    return JobDispatcher(default_handlers(outputs=outputs, generator=generator))


def _assets_job(repository: JobRepository, *, activity_id: str = "A", **kwargs) -> str:
    job = repository.enqueue_job(
        JobCreate(
            job_type="generate_assets",
            org_id="org-1",
            activity_id=activity_id,
            max_attempts=kwargs.pop("max_attempts", 3),
            payload={"vertical_key": "general"},
            **kwargs,
        ),
    )
    return job.job_id


def test_success_after_two_failures(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    generator = ScriptedGenerator(
        RuntimeError("attempt 1 failed"),
        GenerationSchemaError("attempt 2 malformed"),
        make_kit("Third time lucky"),
    )
    worker = _worker(repository, _dispatcher(outputs, generator))
    job_id = _assets_job(repository)

    summary = worker.run_loop(max_idle_polls=1)

    assert summary.processed == 3
    assert summary.retried == 2
    assert summary.succeeded == 1
    assert summary.failed == 0
    job = repository.get_job(job_id=job_id)
    assert job is not None
    assert job.status == JobStatus.DONE
    assert job.attempts == 3
    assert job.locked_by is None
    stored = outputs.list_outputs()
    assert len(stored) == 1
    assert stored[0].title == "Third time lucky"
    assert stored[0].meta["trace_id"] == job.last_trace_id


def test_three_failures_exhaust_the_budget(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    generator = ScriptedGenerator(
        RuntimeError("failure one"),
        RuntimeError("failure two"),
        RuntimeError("failure three"),
    )
    worker = _worker(repository, _dispatcher(outputs, generator))
    job_id = _assets_job(repository)

    summary = worker.run_loop(max_idle_polls=1)

    assert summary.processed == 3
    assert summary.retried == 2
    assert summary.failed == 1
    job = repository.get_job(job_id=job_id)
    assert job is not None
    assert job.status == JobStatus.FAILED
    assert job.attempts == 3
    assert job.last_error == "failure three"
    assert outputs.list_outputs() == []


def test_crashed_worker_job_is_reaped_and_claimed_by_another_worker(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    job_id = _assets_job(repository)
    crashed = repository.claim_next_job(worker_id="w1")
    assert crashed is not None
    age_lock(repository.db_path, job_id, age=timedelta(milliseconds=600_001))

    worker = _worker(
        repository,
        JobDispatcher(default_handlers(outputs=outputs, generator=ScriptedGenerator(make_kit()))),
        worker_id="w2",
        stuck_after=timedelta(milliseconds=600_000),
        reap_interval_seconds=30.0,
    )
    summary = worker.run_once()

    assert summary.reaped == 1
    assert summary.processed == 1
    assert summary.succeeded == 1
    job = repository.get_job(job_id=job_id)
    assert job is not None
    assert job.status == JobStatus.DONE
    assert job.attempts == 1
    details = repository.get_job_details(job_id=job_id)
    assert details is not None
    claims = [
        event.details["worker_id"] for event in details.events if event.event_type == "claimed"
    ]
    assert claims == ["w1", "w2"]


def test_retry_for_same_natural_key_replaces_output(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    generator = ScriptedGenerator(make_kit("X"))
    worker = _worker(repository, _dispatcher(outputs, generator))
    _assets_job(repository, activity_id="A")
    worker.run_once()
    first = outputs.get_output(OutputKey("org-1", "A", "multi"))
    assert first is not None
    assert first.title == "X"

    generator.steps = [make_kit("Y")]
    _assets_job(repository, activity_id="A")
    worker.run_once()

    rows = outputs.list_outputs()
    assert len(rows) == 1
    assert rows[0].output_id == first.output_id
    assert rows[0].title == "Y"


def test_unknown_job_type_consumes_attempts_and_fails(repository: JobRepository) -> None:
    class _ExplodingHandler:
        def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
            raise AssertionError("handler must not run")

    worker = _worker(repository, JobDispatcher({"generate_assets": _ExplodingHandler()}))
    job = repository.enqueue_job(
        JobCreate(job_type="publish_reel", org_id="org-1", max_attempts=2),
    )

    summary = worker.run_loop(max_idle_polls=1)

    assert summary.retried == 1
    assert summary.failed == 1
    stored = repository.get_job(job_id=job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 2
    assert stored.last_error == "unknown job_type: publish_reel"


def test_output_write_failure_after_generation_is_retried(
    repository: JobRepository,
    outputs: OutputRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _disk_full(payload: object) -> None:
        raise RuntimeError("disk full")

    monkeypatch.setattr(outputs, "upsert_output", _disk_full)
    generator = ScriptedGenerator(make_kit())
    worker = _worker(repository, _dispatcher(outputs, generator))
    job_id = _assets_job(repository, activity_id="A")

    summary = worker.run_once()

    assert len(generator.requests) == 1
    assert summary.retried == 1
    assert summary.succeeded == 0
    job = repository.get_job(job_id=job_id)
    assert job is not None
    assert job.status == JobStatus.QUEUED
    assert job.attempts == 1
    assert job.locked_by is None
    assert job.last_error == "disk full"
    assert outputs.get_output(OutputKey("org-1", "A", "multi")) is None


def test_worker_does_not_overwrite_job_it_lost_to_the_reaper(
    repository: JobRepository,
) -> None:
    class _SlowHandler:
        def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
            # Simulate a slow run: the job is reaped and re-claimed meanwhile.
            age_lock(repository.db_path, job.job_id, age=timedelta(hours=1))
            assert repository.reap_stuck_jobs(stuck_after=timedelta(minutes=10)) == 1
            assert repository.claim_next_job(worker_id="worker-2") is not None
            return HandlerResult(
                output_id="out-1",
                output_key=OutputKey(job.org_id, "A", "multi"),
                trace_id=trace_id,
            )

    worker = _worker(repository, JobDispatcher({"generate_assets": _SlowHandler()}))
    job_id = _assets_job(repository)

    summary = worker.run_once()

    assert summary.lost_locks == 1
    assert summary.succeeded == 0
    job = repository.get_job(job_id=job_id)
    assert job is not None
    assert job.status == JobStatus.RUNNING
    assert job.locked_by == "worker-2"


def test_backoff_delay_applies_after_retryable_failure(
    repository: JobRepository,
    outputs: OutputRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    generator = ScriptedGenerator(RuntimeError("boom"), make_kit())
    worker = _worker(
        repository,
        JobDispatcher(default_handlers(outputs=outputs, generator=generator)),
        backoff=BackoffPolicy(base_seconds=2.5, cap_seconds=30.0),
    )
    sleeps: list[float] = []
    monkeypatch.setattr(worker, "_sleep_with_stop", sleeps.append)
    _assets_job(repository)

    worker.run_once()

    assert sleeps == [2.5]


def test_loop_survives_infrastructure_errors(
    repository: JobRepository,
    outputs: OutputRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    worker = _worker(
        repository,
        JobDispatcher(default_handlers(outputs=outputs, generator=ScriptedGenerator(make_kit()))),
        error_delay_seconds=0.75,
    )
    real_claim = repository.claim_next_job
    calls = {"count": 0}

    def _flaky_claim(*, worker_id: str) -> JobView | None:
        calls["count"] += 1
        if calls["count"] <= 2:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return real_claim(worker_id=worker_id)

    monkeypatch.setattr(repository, "claim_next_job", _flaky_claim)
    sleeps: list[float] = []
    monkeypatch.setattr(worker, "_sleep_with_stop", sleeps.append)
    _assets_job(repository)

    summary = worker.run_loop(max_idle_polls=1)

    assert summary.errors == 2
    assert summary.succeeded == 1
    assert sleeps[:2] == [0.75, 0.75]


def test_first_iteration_reaps_then_respects_interval(
    repository: JobRepository,
    outputs: OutputRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    worker = _worker(
        repository,
        JobDispatcher(default_handlers(outputs=outputs, generator=ScriptedGenerator(make_kit()))),
        reap_interval_seconds=3600.0,
    )
    reaps: list[timedelta] = []

    def _record_reap(*, stuck_after: timedelta) -> int:
        reaps.append(stuck_after)
        return 0

    monkeypatch.setattr(repository, "reap_stuck_jobs", _record_reap)

    worker.run_once()
    worker.run_once()

    assert reaps == [timedelta(minutes=10)]


def test_stop_request_is_honoured_at_claim_boundary(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    generator = ScriptedGenerator(make_kit())
    worker = _worker(repository, _dispatcher(outputs, generator))
    _assets_job(repository, activity_id="A")
    _assets_job(repository, activity_id="B")

    class _StopAfterFirst:
        def __init__(self, inner) -> None:
            self.inner = inner

        def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
            worker.request_stop()
            return self.inner.handle(job, payload, trace_id=trace_id)

    handlers = default_handlers(outputs=outputs, generator=generator)
    worker.dispatcher = JobDispatcher(
        {"generate_assets": _StopAfterFirst(handlers["generate_assets"])},
    )

    summary = worker.run_loop()

    assert summary.processed == 1
    assert summary.succeeded == 1
    assert repository.count_by_status()[JobStatus.QUEUED] == 1


def test_loop_stops_when_requested_from_another_thread(
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    worker = _worker(
        repository,
        JobDispatcher(default_handlers(outputs=outputs, generator=ScriptedGenerator(make_kit()))),
        idle_delay_seconds=0.05,
    )
    timer = threading.Timer(0.3, worker.request_stop)
    timer.start()
    try:
        summary = worker.run_loop()
    finally:
        timer.cancel()

    assert worker.stop_requested
    assert summary.processed == 0
    assert summary.idle_polls >= 1


def test_two_workers_drain_queue_without_duplicate_outputs(
    db_path: Path,
    repository: JobRepository,
    outputs: OutputRepository,
) -> None:
    for idx in range(6):
        _assets_job(repository, activity_id=f"act-{idx}")
    errors: list[BaseException] = []

    def _run(worker_id: str) -> None:
        worker_repository = JobRepository(db_path)
        worker_outputs = OutputRepository(db_path)
        try:
            worker = _worker(
                worker_repository,
                JobDispatcher(
                    default_handlers(
                        outputs=worker_outputs,
                        generator=ScriptedGenerator(make_kit(worker_id)),
                    ),
                ),
                worker_id=worker_id,
            )
            worker.run_loop(max_idle_polls=3)
        except BaseException as error:  # noqa: BLE001
            errors.append(error)
        finally:
            worker_outputs.close()
            worker_repository.close()

    threads = [threading.Thread(target=_run, args=(f"w{idx}",)) for idx in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert repository.count_by_status()[JobStatus.DONE] == 6
    stored = outputs.list_outputs(limit=100)
    assert sorted(row.key.source_id for row in stored) == [f"act-{idx}" for idx in range(6)]

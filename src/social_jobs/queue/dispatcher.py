"""Route claimed jobs to the handler registered for their type."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from social_jobs.queue.models import (
    JobPayload,
    JobView,
    OutputKey,
    UnrecognizedPayload,
    parse_payload,
)


class UnknownJobTypeError(RuntimeError):
    """No handler is registered for the job type."""

    def __init__(self, job_type: str) -> None:
        super().__init__(f"unknown job_type: {job_type}")
        self.job_type = job_type


class HandlerError(RuntimeError):
    """Handler cannot proceed: invalid payload or missing upstream context."""


@dataclass(slots=True)
class HandlerResult:
    """Outcome of a successful handler run."""

    output_id: str
    output_key: OutputKey
    trace_id: str


class JobHandler(Protocol):
    """Protocol implemented by job handlers."""

    def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
        """Produce and persist the job's output, raising on any failure."""


class JobDispatcher:
    """Maps ``job_type`` strings to handlers."""

    def __init__(self, handlers: Mapping[str, JobHandler]) -> None:
        self._handlers = dict(handlers)

    @property
    def job_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def dispatch(self, job: JobView, *, trace_id: str) -> HandlerResult:
        """Run the handler for ``job``.

        Raises ``UnknownJobTypeError`` without invoking any handler when the
        type is not registered. The caller treats that like any other handler
        failure, so an unknown job still ends in ``failed`` once its attempts
        run out.
        """

        payload = parse_payload(job)
        handler = self._handlers.get(job.job_type)
        if handler is None or isinstance(payload, UnrecognizedPayload):
            raise UnknownJobTypeError(job.job_type)
        return handler.handle(job, payload, trace_id=trace_id)

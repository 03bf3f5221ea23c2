"""Shared generate-then-upsert step for content handlers."""

from __future__ import annotations

import logging
import time

from social_jobs.generation import ContentGenerator, GenerationRequest
from social_jobs.generation.schema import SOCIAL_KIT_SCHEMA
from social_jobs.queue.dispatcher import HandlerResult
from social_jobs.queue.models import (
    JobView,
    OutputKey,
    OutputWrite,
    VerticalProfileView,
)
from social_jobs.queue.outputs import OutputRepository

logger = logging.getLogger(__name__)


def generate_and_store(  # noqa: PLR0913
    *,
    job: JobView,
    key: OutputKey,
    vertical_key: str,
    profile: VerticalProfileView | None,
    prompts: tuple[str, str],
    generator: ContentGenerator,
    outputs: OutputRepository,
    trace_id: str,
) -> HandlerResult:
    """Call the generator and write the validated kit under ``key``.

    Nothing is written unless generation and validation both succeed.
    """

    system, user = prompts
    started = time.monotonic()
    result = generator.generate(
        GenerationRequest(
            system_instructions=system,
            user_context=user,
            output_schema=SOCIAL_KIT_SCHEMA,
            trace_id=trace_id,
        ),
    )
    duration_ms = int((time.monotonic() - started) * 1000)

    stored = outputs.upsert_output(
        OutputWrite(
            key=key,
            kit=result.kit,
            vertical_key=vertical_key,
            lead_id=job.lead_id,
            meta={
                "trace_id": trace_id,
                "job_id": job.job_id,
                "job_type": job.job_type,
                "activity_id": job.activity_id,
                "model": result.model,
                "dry_run": result.dry_run,
                "vertical_key_used": vertical_key,
                "profile_key": profile.vertical_key if profile else None,
                "profile_version": profile.updated_at.isoformat() if profile else None,
                "duration_ms": duration_ms,
            },
        ),
    )
    logger.info(
        "Stored output %s for job %s (key=%s model=%s trace_id=%s duration_ms=%d)",
        stored.output_id,
        job.job_id,
        key,
        result.model,
        trace_id,
        duration_ms,
    )
    return HandlerResult(output_id=stored.output_id, output_key=key, trace_id=trace_id)

"""Handler for ``generate_post``: a publishable kit built around a lead."""

from __future__ import annotations

from social_jobs.generation import ContentGenerator
from social_jobs.queue.dispatcher import HandlerError, HandlerResult
from social_jobs.queue.handlers.common import generate_and_store
from social_jobs.queue.handlers.prompts import build_post_prompts
from social_jobs.queue.models import (
    SLOT_POST,
    GeneratePostPayload,
    JobPayload,
    JobView,
    OutputKey,
)
from social_jobs.queue.outputs import OutputRepository


class GeneratePostHandler:
    def __init__(self, *, outputs: OutputRepository, generator: ContentGenerator) -> None:
        self.outputs = outputs
        self.generator = generator

    def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
        if not isinstance(payload, GeneratePostPayload):
            raise HandlerError(f"generate_post cannot handle {type(payload).__name__}.")
        if not payload.lead_id:
            raise HandlerError("generate_post requires lead_id.")

        lead = self.outputs.get_lead(org_id=job.org_id, lead_id=payload.lead_id)
        if lead is None:
            raise HandlerError(f"Lead not found: {job.org_id}/{payload.lead_id}")

        profile = self.outputs.get_vertical_profile(payload.vertical_key)
        return generate_and_store(
            job=job,
            key=OutputKey(org_id=job.org_id, source_id=payload.lead_id, slot=SLOT_POST),
            vertical_key=payload.vertical_key,
            profile=profile,
            prompts=build_post_prompts(payload, lead, profile),
            generator=self.generator,
            outputs=self.outputs,
            trace_id=trace_id,
        )

"""Handler for ``generate_assets``: one draft kit per activity."""

from __future__ import annotations

from social_jobs.generation import ContentGenerator
from social_jobs.queue.dispatcher import HandlerError, HandlerResult
from social_jobs.queue.handlers.common import generate_and_store
from social_jobs.queue.handlers.prompts import build_assets_prompts
from social_jobs.queue.models import (
    SLOT_MULTI,
    GenerateAssetsPayload,
    JobPayload,
    JobView,
    OutputKey,
)
from social_jobs.queue.outputs import OutputRepository


class GenerateAssetsHandler:
    def __init__(self, *, outputs: OutputRepository, generator: ContentGenerator) -> None:
        self.outputs = outputs
        self.generator = generator

    def handle(self, job: JobView, payload: JobPayload, *, trace_id: str) -> HandlerResult:
        if not isinstance(payload, GenerateAssetsPayload):
            raise HandlerError(f"generate_assets cannot handle {type(payload).__name__}.")
        if not job.org_id:
            raise HandlerError("generate_assets requires org_id.")
        if not payload.activity_id:
            raise HandlerError("generate_assets requires activity_id.")

        profile = self.outputs.get_vertical_profile(payload.vertical_key)
        return generate_and_store(
            job=job,
            key=OutputKey(org_id=job.org_id, source_id=payload.activity_id, slot=SLOT_MULTI),
            vertical_key=payload.vertical_key,
            profile=profile,
            prompts=build_assets_prompts(payload, profile),
            generator=self.generator,
            outputs=self.outputs,
            trace_id=trace_id,
        )

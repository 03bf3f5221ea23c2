"""Job handlers keyed by job type."""

from __future__ import annotations

from social_jobs.generation import ContentGenerator
from social_jobs.queue.dispatcher import JobHandler
from social_jobs.queue.handlers.generate_assets import GenerateAssetsHandler
from social_jobs.queue.handlers.generate_post import GeneratePostHandler
from social_jobs.queue.models import GENERATE_ASSETS, GENERATE_POST
from social_jobs.queue.outputs import OutputRepository


def default_handlers(
    *,
    outputs: OutputRepository,
    generator: ContentGenerator,
) -> dict[str, JobHandler]:
    return {
        GENERATE_ASSETS: GenerateAssetsHandler(outputs=outputs, generator=generator),
        GENERATE_POST: GeneratePostHandler(outputs=outputs, generator=generator),
    }


__all__ = ["GenerateAssetsHandler", "GeneratePostHandler", "default_handlers"]

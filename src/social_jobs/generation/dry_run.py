"""Deterministic generator used when AI calls are disabled."""

from __future__ import annotations

import re

from social_jobs.generation.base import GenerationRequest, GenerationResult
from social_jobs.queue.models import SocialKit

DRY_RUN_MODEL = "dry-run"

_VERTICAL_RE = re.compile(r"^VERTICAL:\s*(\S+)", re.MULTILINE)


class DryRunGenerator:
    """Returns a fixed placeholder kit without touching the network."""

    def generate(self, request: GenerationRequest) -> GenerationResult:
        match = _VERTICAL_RE.search(request.user_context)
        vertical = match.group(1) if match else "general"
        kit = SocialKit(
            title=f"Draft {vertical} (dry-run)",
            hook=f"Test hook for {vertical}",
            caption=f"Test caption for {vertical}.",
            cta="Want us to get it ready to publish?",
            hashtags=["#socialengine", "#draft", "#automation", "#crm", "#growth", "#ai"],
            image_prompts=[
                (
                    f"High-quality realistic business scene related to {vertical}, "
                    "modern minimal style, neutral background"
                ),
                "Close-up of a laptop dashboard UI representing CRM and automation, no text",
                "Professional team meeting, modern office, optimistic mood, realistic photo",
            ],
        )
        return GenerationResult(kit=kit, model=DRY_RUN_MODEL, dry_run=True)

"""Generator interface used by job handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from social_jobs.queue.models import SocialKit


class GenerationError(RuntimeError):
    """Remote generation call failed."""


class GenerationSchemaError(GenerationError):
    """Generated content does not match the requested structure."""


@dataclass(slots=True)
class GenerationRequest:
    """Inputs for one structured generation call."""

    system_instructions: str
    user_context: str
    output_schema: dict[str, Any]
    trace_id: str


@dataclass(slots=True)
class GenerationResult:
    """Validated generation output."""

    kit: SocialKit
    model: str
    dry_run: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


class ContentGenerator(Protocol):
    """Protocol implemented by content generators."""

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Produce a validated social kit or raise ``GenerationError``."""

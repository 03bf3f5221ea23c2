"""Structured social content generation."""

from social_jobs.generation.base import (
    ContentGenerator,
    GenerationError,
    GenerationRequest,
    GenerationResult,
    GenerationSchemaError,
)
from social_jobs.generation.dry_run import DryRunGenerator
from social_jobs.generation.openai_backend import OpenAIChatGenerator

__all__ = [
    "ContentGenerator",
    "DryRunGenerator",
    "GenerationError",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSchemaError",
    "OpenAIChatGenerator",
]

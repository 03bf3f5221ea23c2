"""Parse and validate the JSON social kit returned by a generator."""

from __future__ import annotations

import json
import re
from typing import Any

from social_jobs.generation.base import GenerationSchemaError
from social_jobs.queue.models import SocialKit

SOCIAL_KIT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["title", "hook", "caption", "cta", "hashtags", "image_prompts"],
    "properties": {
        "title": {"type": "string"},
        "hook": {"type": "string"},
        "caption": {"type": "string"},
        "cta": {"type": "string"},
        "hashtags": {"type": "array", "items": {"type": "string"}},
        "image_prompts": {"type": "array", "items": {"type": "string"}},
    },
}

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


def parse_kit_json(text: str) -> SocialKit:
    """Decode model output (optionally wrapped in code fences) into a kit."""

    cleaned = _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text.strip())).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as error:
        raise GenerationSchemaError(f"Generator returned invalid JSON: {error}") from error
    return validate_kit(payload)


def validate_kit(payload: object) -> SocialKit:
    """Check required fields and normalize lists.

    Hashtags always start with ``#``. Image prompts may arrive as plain strings
    or as ``{"prompt": ...}`` objects.
    """

    if not isinstance(payload, dict):
        raise GenerationSchemaError("Generator returned non-object JSON.")

    values: dict[str, str] = {}
    for key in ("title", "hook", "caption", "cta"):
        value = _string(payload.get(key))
        if not value:
            raise GenerationSchemaError(f"Missing '{key}' in generated JSON.")
        values[key] = value

    hashtags = [
        tag if tag.startswith("#") else f"#{tag}" for tag in _strings(payload.get("hashtags"))
    ]
    if not hashtags:
        raise GenerationSchemaError("Missing/empty 'hashtags' in generated JSON.")

    image_prompts = _strings(payload.get("image_prompts"), nested_key="prompt")
    if not image_prompts:
        raise GenerationSchemaError("Missing/empty 'image_prompts' in generated JSON.")

    return SocialKit(
        title=values["title"],
        hook=values["hook"],
        caption=values["caption"],
        cta=values["cta"],
        hashtags=hashtags,
        image_prompts=image_prompts,
    )


def _string(value: object) -> str:
    if value is None:
        return ""
    return (value if isinstance(value, str) else str(value)).strip()


def _strings(value: object, *, nested_key: str | None = None) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if nested_key is not None and isinstance(item, dict):
            item = item.get(nested_key)  # noqa: PLW2901
        text = _string(item)
        if text:
            items.append(text)
    return items

"""Domain models for the social job queue and its outputs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

GENERATE_ASSETS = "generate_assets"
GENERATE_POST = "generate_post"

SLOT_MULTI = "multi"
SLOT_POST = "post"


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class JobCreate:
    """Input payload for enqueuing a job."""

    job_type: str
    org_id: str
    job_id: str | None = None
    lead_id: str | None = None
    activity_id: str | None = None
    max_attempts: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class JobView:
    """Readable job view for CLI and worker logic."""

    job_id: str
    org_id: str
    lead_id: str | None
    activity_id: str | None
    job_type: str
    status: JobStatus
    attempts: int
    max_attempts: int
    payload: dict[str, Any]
    locked_at: datetime | None
    locked_by: str | None
    last_error: str | None
    last_error_at: datetime | None
    last_trace_id: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class JobEventView:
    """Job event entry for audit trail."""

    event_id: int
    job_id: str
    event_type: str
    status_from: JobStatus | None
    status_to: JobStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class JobDetails:
    """Job details with event stream."""

    job: JobView
    events: list[JobEventView]


@dataclass(frozen=True, slots=True)
class OutputKey:
    """Natural key of a generated output, stable across job retries."""

    org_id: str
    source_id: str
    slot: str

    def __str__(self) -> str:
        return f"{self.org_id}/{self.source_id}/{self.slot}"


@dataclass(slots=True)
class SocialKit:
    """Validated structured content returned by the generator."""

    title: str
    hook: str
    caption: str
    cta: str
    hashtags: list[str]
    image_prompts: list[str]


@dataclass(slots=True)
class OutputWrite:
    """Upsert payload for one output slot."""

    key: OutputKey
    kit: SocialKit
    vertical_key: str
    lead_id: str | None = None
    status: str = "draft"
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class OutputView:
    """Stored output record."""

    output_id: str
    key: OutputKey
    lead_id: str | None
    vertical_key: str
    status: str
    title: str
    hook: str
    caption: str
    cta: str
    hashtags: list[str]
    image_prompts: list[str]
    assets: list[Any]
    meta: dict[str, Any]
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class VerticalProfileWrite:
    """Payload for creating/updating a vertical prompt profile."""

    vertical_key: str
    prompt_system: str | None = None
    prompt_user_prefix: str | None = None
    tone: str | None = None
    audience: str | None = None
    brand_rules: dict[str, Any] = field(default_factory=dict)
    image_style_rules: list[str] = field(default_factory=list)
    hashtag_seed: list[str] = field(default_factory=list)
    cta_library: list[str] = field(default_factory=list)
    is_active: bool = True


@dataclass(slots=True)
class VerticalProfileView:
    """Stored vertical profile used to shape prompts."""

    vertical_key: str
    prompt_system: str | None
    prompt_user_prefix: str | None
    tone: str | None
    audience: str | None
    brand_rules: dict[str, Any]
    image_style_rules: list[str]
    hashtag_seed: list[str]
    cta_library: list[str]
    is_active: bool
    updated_at: datetime


@dataclass(slots=True)
class LeadWrite:
    """Lead context record used by post generation."""

    lead_id: str
    org_id: str
    name: str | None = None
    company: str | None = None
    city: str | None = None
    country: str | None = None
    notes: str | None = None
    source: str | None = None


@dataclass(slots=True)
class LeadView:
    lead_id: str
    org_id: str
    name: str | None
    company: str | None
    city: str | None
    country: str | None
    notes: str | None
    source: str | None

    def to_context(self) -> dict[str, str]:
        """Non-empty fields for prompt context."""

        values = {
            "name": self.name,
            "company": self.company,
            "city": self.city,
            "country": self.country,
            "notes": self.notes,
            "source": self.source,
        }
        return {key: value for key, value in values.items() if value}


# Job payloads. Dispatch is exhaustive over these variants; anything the
# parser does not recognize becomes UnrecognizedPayload with the raw blob.


@dataclass(frozen=True, slots=True)
class GenerateAssetsPayload:
    activity_id: str | None
    vertical_key: str
    locale: str
    lead_name: str
    brief: str
    topic: str
    offer: str


@dataclass(frozen=True, slots=True)
class GeneratePostPayload:
    lead_id: str | None
    vertical_key: str
    goal: str
    channels: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class UnrecognizedPayload:
    job_type: str
    raw: dict[str, Any]


JobPayload = GenerateAssetsPayload | GeneratePostPayload | UnrecognizedPayload

DEFAULT_POST_CHANNELS = ("instagram", "facebook", "linkedin")


def parse_payload(job: JobView) -> JobPayload:
    """Interpret the opaque payload blob according to the job type."""

    raw = job.payload
    meta = _nested_meta(raw)
    if job.job_type == GENERATE_ASSETS:
        return GenerateAssetsPayload(
            activity_id=job.activity_id or _text(raw, meta, "activity_id") or None,
            vertical_key=_text(raw, meta, "vertical_key") or "general",
            locale=_text(raw, meta, "locale") or "es",
            lead_name=_text(raw, meta, "lead_name"),
            brief=_text(raw, meta, "brief"),
            topic=_text(raw, meta, "topic"),
            offer=_text(raw, meta, "offer"),
        )
    if job.job_type == GENERATE_POST:
        channels = raw.get("channels")
        channel_values = (
            tuple(str(item).strip() for item in channels if str(item).strip())
            if isinstance(channels, list)
            else ()
        )
        return GeneratePostPayload(
            lead_id=job.lead_id or _text(raw, meta, "lead_id") or None,
            vertical_key=(
                _text(raw, meta, "vertical_key") or _text(raw, meta, "verticalKey") or "general"
            ),
            goal=_text(raw, meta, "goal") or "sell",
            channels=channel_values or DEFAULT_POST_CHANNELS,
        )
    return UnrecognizedPayload(job_type=job.job_type, raw=dict(raw))


def _nested_meta(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    for key in ("meta", "metadata"):
        value = raw.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def _text(raw: Mapping[str, Any], meta: Mapping[str, Any], key: str) -> str:
    for source in (raw, meta):
        value = source.get(key)
        if value is None:
            continue
        text = value if isinstance(value, str) else str(value)
        if text.strip():
            return text.strip()
    return ""

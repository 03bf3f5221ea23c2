"""SQLModel ORM tables for job queue storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class SocialJob(SQLModel, table=True):
    __tablename__ = "social_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_social_jobs_claim", "status", "created_at"),
        Index("idx_social_jobs_lock", "status", "locked_at"),
    )

    job_id: str = Field(primary_key=True)
    org_id: str = Field(index=True)
    lead_id: str | None = Field(default=None, index=True)
    activity_id: str | None = Field(default=None, index=True)
    job_type: str = Field(index=True)
    status: str = Field(index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    payload_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    locked_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    locked_by: str | None = Field(default=None, index=True)
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    last_error_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    last_trace_id: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SocialJobEvent(SQLModel, table=True):
    __tablename__ = "social_job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_social_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            ForeignKey("social_jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = Field(default=None, index=True)
    status_to: str | None = Field(default=None, index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SocialOutput(SQLModel, table=True):
    __tablename__ = "social_outputs"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "org_id",
            "source_id",
            "slot",
            name="uq_social_outputs_natural_key",
        ),
    )

    output_id: str = Field(primary_key=True)
    org_id: str = Field(index=True)
    source_id: str = Field(index=True)
    slot: str
    lead_id: str | None = Field(default=None, index=True)
    vertical_key: str
    status: str
    title: str
    hook: str
    caption: str = Field(sa_column=Column(Text, nullable=False))
    cta: str
    hashtags_json: str = Field(sa_column=Column(Text, nullable=False))
    image_prompts_json: str = Field(sa_column=Column(Text, nullable=False))
    assets_json: str = Field(sa_column=Column(Text, nullable=False))
    meta_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class VerticalProfile(SQLModel, table=True):
    __tablename__ = "social_vertical_profiles"  # type: ignore[bad-override]

    vertical_key: str = Field(primary_key=True)
    prompt_system: str | None = Field(default=None, sa_column=Column(Text))
    prompt_user_prefix: str | None = Field(default=None, sa_column=Column(Text))
    tone: str | None = None
    audience: str | None = None
    brand_rules_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    image_style_rules_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    hashtag_seed_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    cta_library_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Lead(SQLModel, table=True):
    __tablename__ = "leads"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("org_id", "lead_id", name="uq_leads_org_lead"),)

    id: int | None = Field(default=None, primary_key=True)
    lead_id: str = Field(index=True)
    org_id: str = Field(index=True)
    name: str | None = None
    company: str | None = None
    city: str | None = None
    country: str | None = None
    notes: str | None = Field(default=None, sa_column=Column(Text))
    source: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))

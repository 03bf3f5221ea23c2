"""Initial social jobs queue, outputs, and upstream context tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "social_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=True),
        sa.Column("activity_id", sa.String(), nullable=True),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("payload_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_trace_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_social_jobs_org_id", "social_jobs", ["org_id"])
    op.create_index("ix_social_jobs_lead_id", "social_jobs", ["lead_id"])
    op.create_index("ix_social_jobs_activity_id", "social_jobs", ["activity_id"])
    op.create_index("ix_social_jobs_job_type", "social_jobs", ["job_type"])
    op.create_index("ix_social_jobs_status", "social_jobs", ["status"])
    op.create_index("ix_social_jobs_locked_by", "social_jobs", ["locked_by"])
    op.create_index("idx_social_jobs_claim", "social_jobs", ["status", "created_at"])
    op.create_index("idx_social_jobs_lock", "social_jobs", ["status", "locked_at"])

    op.create_table(
        "social_job_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["social_jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_social_job_events_job_id", "social_job_events", ["job_id"])
    op.create_index("ix_social_job_events_event_type", "social_job_events", ["event_type"])
    op.create_index("ix_social_job_events_status_from", "social_job_events", ["status_from"])
    op.create_index("ix_social_job_events_status_to", "social_job_events", ["status_to"])
    op.create_index(
        "idx_social_job_events_job_time",
        "social_job_events",
        ["job_id", "created_at"],
    )

    op.create_table(
        "social_outputs",
        sa.Column("output_id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("source_id", sa.String(), nullable=False),
        sa.Column("slot", sa.String(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=True),
        sa.Column("vertical_key", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("hook", sa.String(), nullable=False),
        sa.Column("caption", sa.Text(), nullable=False),
        sa.Column("cta", sa.String(), nullable=False),
        sa.Column("hashtags_json", sa.Text(), nullable=False),
        sa.Column("image_prompts_json", sa.Text(), nullable=False),
        sa.Column("assets_json", sa.Text(), nullable=False),
        sa.Column("meta_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("output_id"),
        sa.UniqueConstraint(
            "org_id",
            "source_id",
            "slot",
            name="uq_social_outputs_natural_key",
        ),
    )
    op.create_index("ix_social_outputs_org_id", "social_outputs", ["org_id"])
    op.create_index("ix_social_outputs_source_id", "social_outputs", ["source_id"])
    op.create_index("ix_social_outputs_lead_id", "social_outputs", ["lead_id"])

    op.create_table(
        "social_vertical_profiles",
        sa.Column("vertical_key", sa.String(), nullable=False),
        sa.Column("prompt_system", sa.Text(), nullable=True),
        sa.Column("prompt_user_prefix", sa.Text(), nullable=True),
        sa.Column("tone", sa.String(), nullable=True),
        sa.Column("audience", sa.String(), nullable=True),
        sa.Column("brand_rules_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("image_style_rules_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("hashtag_seed_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("cta_library_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("vertical_key"),
    )
    op.create_index(
        "ix_social_vertical_profiles_is_active",
        "social_vertical_profiles",
        ["is_active"],
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("lead_id", sa.String(), nullable=False),
        sa.Column("org_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("company", sa.String(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "lead_id", name="uq_leads_org_lead"),
    )
    op.create_index("ix_leads_lead_id", "leads", ["lead_id"])
    op.create_index("ix_leads_org_id", "leads", ["org_id"])


def downgrade() -> None:
    op.drop_table("leads")
    op.drop_table("social_vertical_profiles")
    op.drop_table("social_outputs")
    op.drop_table("social_job_events")
    op.drop_table("social_jobs")

"""Output persistence plus the upstream context (profiles, leads) handlers read."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from social_jobs.queue.models import (
    LeadView,
    LeadWrite,
    OutputKey,
    OutputView,
    OutputWrite,
    VerticalProfileView,
    VerticalProfileWrite,
)
from social_jobs.storage.alembic_runner import upgrade_head
from social_jobs.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from social_jobs.storage.sqlmodel_models import Lead, SocialOutput, VerticalProfile

DEFAULT_VERTICAL = "general"


class OutputRepository:
    """Writes generated outputs keyed by ``(org_id, source_id, slot)``.

    ``upsert_output`` is a single ``INSERT ... ON CONFLICT DO UPDATE`` statement,
    so a retried or duplicated job converges on one row instead of racing a
    read-then-write.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def upsert_output(self, payload: OutputWrite) -> OutputView:
        """Insert or replace the output stored under ``payload.key``."""

        key = payload.key
        if not key.org_id or not key.source_id or not key.slot:
            raise ValueError(f"Output natural key must be fully populated, got {key}.")

        now = to_db_datetime(utc_now())
        content = {
            "lead_id": payload.lead_id,
            "vertical_key": payload.vertical_key,
            "status": payload.status,
            "title": payload.kit.title,
            "hook": payload.kit.hook,
            "caption": payload.kit.caption,
            "cta": payload.kit.cta,
            "hashtags_json": _dump(payload.kit.hashtags),
            "image_prompts_json": _dump(payload.kit.image_prompts),
            "meta_json": _dump(payload.meta),
            "updated_at": now,
        }
        statement = sqlite_insert(SocialOutput).values(
            output_id=str(uuid4()),
            org_id=key.org_id,
            source_id=key.source_id,
            slot=key.slot,
            assets_json="[]",
            created_at=now,
            **content,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["org_id", "source_id", "slot"],
            set_=content,
        )

        with Session(self.engine) as session:
            session.exec(statement)
            session.commit()

        stored = self.get_output(key)
        if stored is None:
            raise RuntimeError(f"Output vanished right after upsert: {key}")
        return stored

    def get_output(self, key: OutputKey) -> OutputView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(SocialOutput).where(
                    SocialOutput.org_id == key.org_id,
                    SocialOutput.source_id == key.source_id,
                    SocialOutput.slot == key.slot,
                ),
            ).one_or_none()
            return _to_output_view(row) if row is not None else None

    def list_outputs(
        self,
        *,
        org_id: str | None = None,
        source_id: str | None = None,
        limit: int = 50,
    ) -> list[OutputView]:
        with Session(self.engine) as session:
            statement = (
                select(SocialOutput).order_by(col(SocialOutput.updated_at).desc()).limit(limit)
            )
            if org_id is not None:
                statement = statement.where(SocialOutput.org_id == org_id)
            if source_id is not None:
                statement = statement.where(SocialOutput.source_id == source_id)
            rows = session.exec(statement).all()
        return [_to_output_view(row) for row in rows]

    def upsert_vertical_profile(self, payload: VerticalProfileWrite) -> VerticalProfileView:
        """Create or replace a vertical prompt profile."""

        if not payload.vertical_key.strip():
            raise ValueError("vertical_key cannot be empty.")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.get(VerticalProfile, payload.vertical_key)
            if row is None:
                row = VerticalProfile(
                    vertical_key=payload.vertical_key,
                    created_at=now,
                    updated_at=now,
                )
            row.prompt_system = payload.prompt_system
            row.prompt_user_prefix = payload.prompt_user_prefix
            row.tone = payload.tone
            row.audience = payload.audience
            row.brand_rules_json = _dump(payload.brand_rules)
            row.image_style_rules_json = _dump(payload.image_style_rules)
            row.hashtag_seed_json = _dump(payload.hashtag_seed)
            row.cta_library_json = _dump(payload.cta_library)
            row.is_active = payload.is_active
            row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_profile_view(row)

    def get_vertical_profile(self, vertical_key: str) -> VerticalProfileView | None:
        """Active profile for ``vertical_key``, falling back to the general one."""

        with Session(self.engine) as session:
            for key in dict.fromkeys((vertical_key, DEFAULT_VERTICAL)):
                row = session.exec(
                    select(VerticalProfile).where(
                        VerticalProfile.vertical_key == key,
                        col(VerticalProfile.is_active).is_(True),
                    ),
                ).one_or_none()
                if row is not None:
                    return _to_profile_view(row)
        return None

    def add_lead(self, payload: LeadWrite) -> LeadView:
        if not payload.lead_id.strip() or not payload.org_id.strip():
            raise ValueError("lead_id and org_id cannot be empty.")

        with Session(self.engine) as session:
            row = Lead(
                lead_id=payload.lead_id,
                org_id=payload.org_id,
                name=payload.name,
                company=payload.company,
                city=payload.city,
                country=payload.country,
                notes=payload.notes,
                source=payload.source,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise RuntimeError(
                    f"Lead already exists: {payload.org_id}/{payload.lead_id}",
                ) from error
            session.refresh(row)
            return _to_lead_view(row)

    def get_lead(self, *, org_id: str, lead_id: str) -> LeadView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Lead).where(Lead.org_id == org_id, Lead.lead_id == lead_id),
            ).one_or_none()
            return _to_lead_view(row) if row is not None else None


def _dump(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return default
    return parsed if isinstance(parsed, type(default)) else default


def _style_rules(items: list[Any]) -> list[str]:
    # Rules are stored either as plain strings or as {"rule": "..."} objects.
    rules: list[str] = []
    for item in items:
        text = item.get("rule") if isinstance(item, dict) else item
        if text and str(text).strip():
            rules.append(str(text).strip())
    return rules


def _to_output_view(row: SocialOutput) -> OutputView:
    return OutputView(
        output_id=row.output_id,
        key=OutputKey(org_id=row.org_id, source_id=row.source_id, slot=row.slot),
        lead_id=row.lead_id,
        vertical_key=row.vertical_key,
        status=row.status,
        title=row.title,
        hook=row.hook,
        caption=row.caption,
        cta=row.cta,
        hashtags=[str(item) for item in _load(row.hashtags_json, [])],
        image_prompts=[str(item) for item in _load(row.image_prompts_json, [])],
        assets=_load(row.assets_json, []),
        meta=_load(row.meta_json, {}),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_profile_view(row: VerticalProfile) -> VerticalProfileView:
    return VerticalProfileView(
        vertical_key=row.vertical_key,
        prompt_system=row.prompt_system,
        prompt_user_prefix=row.prompt_user_prefix,
        tone=row.tone,
        audience=row.audience,
        brand_rules=_load(row.brand_rules_json, {}),
        image_style_rules=_style_rules(_load(row.image_style_rules_json, [])),
        hashtag_seed=[str(item) for item in _load(row.hashtag_seed_json, [])],
        cta_library=[str(item) for item in _load(row.cta_library_json, [])],
        is_active=row.is_active,
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_lead_view(row: Lead) -> LeadView:
    return LeadView(
        lead_id=row.lead_id,
        org_id=row.org_id,
        name=row.name,
        company=row.company,
        city=row.city,
        country=row.country,
        notes=row.notes,
        source=row.source,
    )

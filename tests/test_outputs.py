from __future__ import annotations

import threading
from pathlib import Path

import allure
import pytest
from conftest import make_kit

from social_jobs.queue.models import (
    LeadWrite,
    OutputKey,
    OutputWrite,
    VerticalProfileWrite,
)
from social_jobs.queue.outputs import OutputRepository
from social_jobs.storage.common import open_sqlite_connection

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Idempotent Outputs"),
]


def test_upsert_same_key_converges_on_latest_content(outputs: OutputRepository) -> None:
    key = OutputKey(org_id="org-1", source_id="A", slot="multi")

    first = outputs.upsert_output(
        OutputWrite(key=key, kit=make_kit("X"), vertical_key="general", meta={"trace_id": "t1"}),
    )
    second = outputs.upsert_output(
        OutputWrite(key=key, kit=make_kit("Y"), vertical_key="retail", meta={"trace_id": "t2"}),
    )

    assert second.output_id == first.output_id
    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at
    assert second.title == "Y"
    assert second.vertical_key == "retail"
    assert second.meta == {"trace_id": "t2"}
    assert second.assets == []
    assert second.status == "draft"

    rows = outputs.list_outputs(org_id="org-1")
    assert len(rows) == 1
    assert rows[0].title == "Y"


def test_distinct_keys_produce_distinct_rows(outputs: OutputRepository) -> None:
    outputs.upsert_output(
        OutputWrite(key=OutputKey("org-1", "A", "multi"), kit=make_kit(), vertical_key="general"),
    )
    outputs.upsert_output(
        OutputWrite(key=OutputKey("org-1", "A", "post"), kit=make_kit(), vertical_key="general"),
    )
    outputs.upsert_output(
        OutputWrite(key=OutputKey("org-2", "A", "multi"), kit=make_kit(), vertical_key="general"),
    )

    assert len(outputs.list_outputs()) == 3
    assert len(outputs.list_outputs(org_id="org-1", source_id="A")) == 2


def test_upsert_rejects_incomplete_key(outputs: OutputRepository) -> None:
    with pytest.raises(ValueError):
        outputs.upsert_output(
            OutputWrite(key=OutputKey("org-1", "", "multi"), kit=make_kit(), vertical_key="x"),
        )


def test_concurrent_upserts_leave_one_row(db_path: Path, outputs: OutputRepository) -> None:
    key = OutputKey(org_id="org-1", source_id="A", slot="multi")
    start = threading.Barrier(4)
    errors: list[BaseException] = []

    def _write(title: str) -> None:
        writer = OutputRepository(db_path)
        try:
            start.wait(timeout=5)
            writer.upsert_output(OutputWrite(key=key, kit=make_kit(title), vertical_key="general"))
        except BaseException as error:  # noqa: BLE001
            errors.append(error)
        finally:
            writer.close()

    threads = [threading.Thread(target=_write, args=(f"T{idx}",)) for idx in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    rows = outputs.list_outputs(org_id="org-1")
    assert len(rows) == 1
    assert rows[0].title in {"T0", "T1", "T2", "T3"}


def test_vertical_profile_falls_back_to_general(outputs: OutputRepository) -> None:
    assert outputs.get_vertical_profile("dental") is None

    outputs.upsert_vertical_profile(
        VerticalProfileWrite(vertical_key="general", tone="friendly", hashtag_seed=["#biz"]),
    )
    fallback = outputs.get_vertical_profile("dental")
    assert fallback is not None
    assert fallback.vertical_key == "general"
    assert fallback.tone == "friendly"

    outputs.upsert_vertical_profile(VerticalProfileWrite(vertical_key="dental", tone="calm"))
    exact = outputs.get_vertical_profile("dental")
    assert exact is not None
    assert exact.vertical_key == "dental"


def test_inactive_profile_is_ignored(outputs: OutputRepository) -> None:
    outputs.upsert_vertical_profile(VerticalProfileWrite(vertical_key="dental", is_active=False))

    assert outputs.get_vertical_profile("dental") is None


def test_profile_style_rules_accept_rule_objects(
    db_path: Path,
    outputs: OutputRepository,
) -> None:
    outputs.upsert_vertical_profile(VerticalProfileWrite(vertical_key="general"))
    connection = open_sqlite_connection(db_path)
    try:
        connection.execute(
            "UPDATE social_vertical_profiles SET image_style_rules_json = ? "
            "WHERE vertical_key = 'general'",
            ('[{"rule": "soft light"}, "no text", {"other": 1}]',),
        )
        connection.commit()
    finally:
        connection.close()

    profile = outputs.get_vertical_profile("general")
    assert profile is not None
    assert profile.image_style_rules == ["soft light", "no text"]


def test_leads_are_scoped_by_org(outputs: OutputRepository) -> None:
    outputs.add_lead(LeadWrite(lead_id="lead-1", org_id="org-1", name="Ana", city="Madrid"))

    lead = outputs.get_lead(org_id="org-1", lead_id="lead-1")
    assert lead is not None
    assert lead.to_context() == {"name": "Ana", "city": "Madrid"}
    assert outputs.get_lead(org_id="org-2", lead_id="lead-1") is None

    with pytest.raises(RuntimeError, match="Lead already exists"):
        outputs.add_lead(LeadWrite(lead_id="lead-1", org_id="org-1"))

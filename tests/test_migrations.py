from pathlib import Path

import allure

from social_jobs.queue.repository import JobRepository
from social_jobs.storage.common import open_sqlite_connection

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Schema"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = JobRepository(tmp_path / "migrations.db")
    repository.init_schema()
    repository.init_schema()
    repository.close()
    connection = open_sqlite_connection(tmp_path / "migrations.db")

    row = connection.execute(
        "SELECT version_num FROM alembic_version LIMIT 1"
    ).fetchone()
    assert row is not None
    assert str(row["version_num"]) == "20261016_0001"

    tables = connection.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name IN ('social_jobs', 'social_job_events', 'social_outputs',
                       'social_vertical_profiles', 'leads')
        ORDER BY name
        """
    ).fetchall()
    assert [str(row["name"]) for row in tables] == [
        "leads",
        "social_job_events",
        "social_jobs",
        "social_outputs",
        "social_vertical_profiles",
    ]

    indexes = connection.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'index'
          AND name IN ('idx_social_jobs_claim', 'idx_social_jobs_lock')
        ORDER BY name
        """
    ).fetchall()
    assert [str(row["name"]) for row in indexes] == [
        "idx_social_jobs_claim",
        "idx_social_jobs_lock",
    ]

    journal_mode = connection.execute("PRAGMA journal_mode").fetchone()
    assert str(journal_mode[0]).lower() == "wal"
    connection.close()

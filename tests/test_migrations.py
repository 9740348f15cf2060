from pathlib import Path

import allure
from sqlalchemy import inspect, text

from resume_forge.storage.database import Database

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    database = Database(tmp_path / "migrations.db")
    database.init_schema()
    database.init_schema()

    with database.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
    tables = set(inspect(database.engine).get_table_names())
    database.close()

    assert version == "20261005_0002"
    assert {
        "users",
        "ledger_activities",
        "tracked_tasks",
        "tracked_task_events",
        "pipeline_jobs",
        "analysis_records",
        "application_records",
        "prep_guide_sections",
    } <= tables

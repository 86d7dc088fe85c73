from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Connection

import timify.models  # noqa: F401
from timify.db.base import Base
from timify.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role"},
    "faculty": {"id", "name", "department", "max_hours_per_week", "availability"},
    "rooms": {"id", "code", "capacity", "type"},
    "subjects": {"id", "code", "semester", "type", "min_theory_hours", "min_lab_hours", "capacity"},
    "credit_limits": {"id", "semester_number", "max_credits"},
    "catalog_versions": {"id", "version"},
    "timetables": {"id", "status", "catalog_version"},
    "timetable_slots": {"id", "timetable_id", "day", "period", "room_code", "faculty_id"},
}


def inspect_schema(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, columns in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(columns - existing)
        if missing:
            missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema() -> None:
    # Additive only: creates absent tables, never alters existing ones.
    Base.metadata.create_all(bind=engine)
    with engine.connect() as connection:
        missing_tables, missing_columns = inspect_schema(connection)
    if missing_tables or missing_columns:
        logger.warning(
            "SCHEMA DRIFT | missing_tables=%s | missing_columns=%s | run `alembic upgrade head`",
            missing_tables,
            missing_columns,
        )

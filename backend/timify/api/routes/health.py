from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from timify.core.config import get_settings
from timify.db.bootstrap import inspect_schema
from timify.db.session import engine
from timify.services.slot_grid import grid_from_settings

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": _now()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    database = {"ok": True, "schema_ok": False, "missing_tables": [], "missing_columns": {}, "error": None}
    catalog_version: int | None = None
    try:
        with engine.connect() as connection:
            missing_tables, missing_columns = inspect_schema(connection)
            database.update(
                missing_tables=missing_tables,
                missing_columns=missing_columns,
                schema_ok=not missing_tables and not missing_columns,
            )
            if database["schema_ok"]:
                catalog_version = connection.execute(
                    text("SELECT version FROM catalog_versions WHERE id = 1")
                ).scalar_one_or_none() or 0
    except SQLAlchemyError as exc:  # pragma: no cover - environment dependent
        database.update(ok=False, error=str(exc))

    # An invalid grid configuration would fail every generate call.
    try:
        grid = grid_from_settings(get_settings())
        scheduler = {"ok": True, "days": grid.days, "teaching_periods": len(grid.teaching_periods), "error": None}
    except ValueError as exc:
        scheduler = {"ok": False, "days": None, "teaching_periods": None, "error": str(exc)}

    ready = database["ok"] and database["schema_ok"] and scheduler["ok"]
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": _now(),
        "database": database,
        "scheduler": scheduler,
        "catalog_version": catalog_version,
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)

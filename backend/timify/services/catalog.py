from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from functools import cached_property
from typing import Protocol

from timify.core.exceptions import CatalogValidationError, ConcurrentCatalogChange
from timify.models.room import RoomType
from timify.models.subject import SubjectType
from timify.schemas.common import WEEKDAY_KEYS, parse_time_to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayWindow:
    available: bool
    start_minute: int
    end_minute: int

    def covers(self, start_minute: int, end_minute: int) -> bool:
        return self.available and self.start_minute <= start_minute and end_minute <= self.end_minute


@dataclass(frozen=True)
class FacultyRecord:
    id: str
    name: str
    department: str
    max_hours_per_week: int
    availability: dict[int, DayWindow] = field(default_factory=dict)

    @property
    def always_available(self) -> bool:
        return not self.availability

    def is_available(self, day: int, start_minute: int, end_minute: int) -> bool:
        if self.always_available:
            return True
        window = self.availability.get(day)
        return window is not None and window.covers(start_minute, end_minute)


@dataclass(frozen=True)
class RoomRecord:
    code: str
    building: str
    capacity: int
    room_type: RoomType


@dataclass(frozen=True)
class SubjectRecord:
    code: str
    name: str
    semester: int
    credits: int
    subject_type: SubjectType
    min_theory_hours: int = 0
    min_lab_hours: int = 0
    capacity: int = 30
    faculty_id: str | None = None
    department: str | None = None
    prerequisites: tuple[str, ...] = ()
    allow_same_day: bool = False


@dataclass(frozen=True)
class CatalogSnapshot:
    """Read-only view of the catalog for one scheduling run."""

    version: int
    subjects: tuple[SubjectRecord, ...]
    rooms: tuple[RoomRecord, ...]
    faculty: tuple[FacultyRecord, ...]
    credit_limits: dict[int, int] = field(default_factory=dict)

    @cached_property
    def subjects_by_code(self) -> dict[str, SubjectRecord]:
        return {item.code: item for item in self.subjects}

    @cached_property
    def rooms_by_code(self) -> dict[str, RoomRecord]:
        return {item.code: item for item in self.rooms}

    @cached_property
    def faculty_by_id(self) -> dict[str, FacultyRecord]:
        return {item.id: item for item in self.faculty}

    def faculty_in_department(self, department: str | None) -> list[FacultyRecord]:
        if not department:
            return sorted(self.faculty, key=lambda item: item.id)
        wanted = department.strip().lower()
        return sorted(
            (item for item in self.faculty if item.department.strip().lower() == wanted),
            key=lambda item: item.id,
        )


class CatalogSource(Protocol):
    def catalog_version(self, *, lock: bool = False) -> int: ...

    def load_subjects(self) -> list[SubjectRecord]: ...

    def load_rooms(self) -> list[RoomRecord]: ...

    def load_faculty(self) -> list[FacultyRecord]: ...

    def load_credit_limits(self) -> dict[int, int]: ...


def parse_availability(raw: dict | None) -> dict[int, DayWindow]:
    """Convert the stored ``{"monday": {"available", "start", "end"}}`` mapping to day-indexed windows."""
    windows: dict[int, DayWindow] = {}
    for key, value in (raw or {}).items():
        day_key = str(key).strip().lower()
        if day_key not in WEEKDAY_KEYS or not isinstance(value, dict):
            continue
        available = bool(value.get("available", True))
        try:
            start = parse_time_to_minutes(value.get("start") or "00:00")
            end = parse_time_to_minutes(value.get("end") or "23:59")
        except ValueError:
            available, start, end = False, 0, 0
        windows[WEEKDAY_KEYS.index(day_key)] = DayWindow(available=available, start_minute=start, end_minute=end)
    return windows


def find_prerequisite_cycle(graph: dict[str, tuple[str, ...]]) -> list[str] | None:
    visiting: set[str] = set()
    done: set[str] = set()
    path: list[str] = []

    def visit(node: str) -> list[str] | None:
        visiting.add(node)
        path.append(node)
        for nxt in graph.get(node, ()):
            if nxt in visiting:
                return path[path.index(nxt):] + [nxt]
            if nxt not in done:
                found = visit(nxt)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        path.pop()
        return None

    for node in sorted(graph):
        if node not in done:
            found = visit(node)
            if found:
                return found
    return None


def validate_catalog(snapshot: CatalogSnapshot) -> None:
    def duplicates(values: list[str]) -> list[str]:
        return sorted(value for value, count in Counter(values).items() if count > 1)

    for label, values in (
        ("subject codes", [item.code for item in snapshot.subjects]),
        ("room codes", [item.code for item in snapshot.rooms]),
        ("faculty ids", [item.id for item in snapshot.faculty]),
    ):
        repeated = duplicates(values)
        if repeated:
            raise CatalogValidationError(f"Duplicate {label} in catalog", details={"duplicates": repeated})

    known = set(snapshot.subjects_by_code)
    unknown = {
        item.code: sorted(set(item.prerequisites) - known)
        for item in snapshot.subjects
        if set(item.prerequisites) - known
    }
    if unknown:
        raise CatalogValidationError("Unknown prerequisite subjects", details={"unknown": unknown})

    cycle = find_prerequisite_cycle({item.code: item.prerequisites for item in snapshot.subjects})
    if cycle:
        raise CatalogValidationError("Prerequisite cycle detected", details={"cycle": cycle})


def take_snapshot(source: CatalogSource) -> CatalogSnapshot:
    version = source.catalog_version()
    snapshot = CatalogSnapshot(
        version=version,
        subjects=tuple(sorted(source.load_subjects(), key=lambda item: item.code)),
        rooms=tuple(sorted(source.load_rooms(), key=lambda item: item.code)),
        faculty=tuple(sorted(source.load_faculty(), key=lambda item: item.id)),
        credit_limits=dict(source.load_credit_limits()),
    )
    current = source.catalog_version()
    if current != version:
        logger.warning("CATALOG SNAPSHOT RACE | expected=%s | current=%s", version, current)
        raise ConcurrentCatalogChange(version, current)
    validate_catalog(snapshot)
    return snapshot

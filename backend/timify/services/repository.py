from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timify.models.catalog_version import CatalogVersion
from timify.models.credit_limit import CreditLimit
from timify.models.faculty import Faculty
from timify.models.room import Room
from timify.models.subject import Subject
from timify.models.timetable import Timetable, TimetableSlot, TimetableStatus
from timify.services.catalog import FacultyRecord, RoomRecord, SubjectRecord, parse_availability
from timify.services.constraints import Placement
from timify.services.slot_grid import DEFAULT_GRID, SlotGrid

CATALOG_VERSION_ROW_ID = 1


@dataclass(frozen=True)
class TimetableMeta:
    name: str
    catalog_version: int
    semester: int | None = None
    academic_year: str | None = None
    created_by_id: str | None = None
    summary: dict = field(default_factory=dict)


def bump_catalog_version(db: Session) -> int:
    """Increment the catalog version inside the caller's transaction."""
    row = db.get(CatalogVersion, CATALOG_VERSION_ROW_ID)
    if row is None:
        row = CatalogVersion(id=CATALOG_VERSION_ROW_ID, version=1)
        db.add(row)
    else:
        row.version += 1
    db.flush()
    return row.version


class TimetableRepository:
    """SQLAlchemy-backed catalog source and timetable store.

    Methods never commit; transaction boundaries belong to the caller.
    """

    def __init__(self, db: Session, grid: SlotGrid = DEFAULT_GRID) -> None:
        self.db = db
        self.grid = grid

    def catalog_version(self, *, lock: bool = False) -> int:
        stmt = select(CatalogVersion).where(CatalogVersion.id == CATALOG_VERSION_ROW_ID)
        if lock:
            stmt = stmt.with_for_update()
        row = self.db.execute(stmt).scalar_one_or_none()
        return row.version if row is not None else 0

    def load_subjects(self) -> list[SubjectRecord]:
        rows = self.db.execute(select(Subject).order_by(Subject.code)).scalars().all()
        return [
            SubjectRecord(
                code=row.code,
                name=row.name,
                semester=row.semester,
                credits=row.credits,
                subject_type=row.type,
                min_theory_hours=row.min_theory_hours,
                min_lab_hours=row.min_lab_hours,
                capacity=row.capacity,
                faculty_id=row.faculty_id,
                department=row.department,
                prerequisites=tuple(row.prerequisite_codes or ()),
                allow_same_day=row.allow_same_day,
            )
            for row in rows
        ]

    def load_rooms(self) -> list[RoomRecord]:
        rows = self.db.execute(select(Room).order_by(Room.code)).scalars().all()
        return [
            RoomRecord(code=row.code, building=row.building, capacity=row.capacity, room_type=row.type)
            for row in rows
        ]

    def load_faculty(self) -> list[FacultyRecord]:
        rows = self.db.execute(select(Faculty).order_by(Faculty.id)).scalars().all()
        return [
            FacultyRecord(
                id=row.id,
                name=row.name,
                department=row.department,
                max_hours_per_week=row.max_hours_per_week,
                availability=parse_availability(row.availability),
            )
            for row in rows
        ]

    def load_credit_limits(self) -> dict[int, int]:
        rows = self.db.execute(select(CreditLimit)).scalars().all()
        return {row.semester_number: row.max_credits for row in rows}

    def published_timetable(self) -> Timetable | None:
        return self.db.execute(
            select(Timetable).where(Timetable.status == TimetableStatus.published)
        ).scalar_one_or_none()

    def get_timetable(self, timetable_id: str) -> Timetable | None:
        return self.db.get(Timetable, timetable_id)

    def list_timetables(self) -> list[Timetable]:
        return list(self.db.execute(select(Timetable).order_by(Timetable.created_at.desc())).scalars().all())

    def slots_for(self, timetable_id: str) -> list[TimetableSlot]:
        return list(
            self.db.execute(
                select(TimetableSlot)
                .where(TimetableSlot.timetable_id == timetable_id)
                .order_by(TimetableSlot.day, TimetableSlot.period, TimetableSlot.room_code)
            )
            .scalars()
            .all()
        )

    def count_published_slots(
        self,
        *,
        faculty_id: str | None = None,
        subject_codes: frozenset[str] | None = None,
    ) -> int:
        stmt = (
            select(func.count(TimetableSlot.id))
            .join(Timetable, Timetable.id == TimetableSlot.timetable_id)
            .where(Timetable.status == TimetableStatus.published)
        )
        if faculty_id is not None:
            stmt = stmt.where(TimetableSlot.faculty_id == faculty_id)
        if subject_codes is not None:
            if not subject_codes:
                return 0
            stmt = stmt.where(TimetableSlot.subject_code.in_(sorted(subject_codes)))
        return self.db.execute(stmt).scalar_one()

    def archive_published(self) -> int:
        archived = 0
        now = datetime.now(timezone.utc)
        for row in self.db.execute(
            select(Timetable).where(Timetable.status == TimetableStatus.published)
        ).scalars():
            row.status = TimetableStatus.archived
            row.archived_at = now
            archived += 1
        # The single-published index must see the archive before the next insert.
        self.db.flush()
        return archived

    def insert_timetable(
        self,
        meta: TimetableMeta,
        assignments: list[Placement],
        status: TimetableStatus = TimetableStatus.published,
    ) -> Timetable:
        subjects = {row.code: row for row in self.db.execute(select(Subject)).scalars()}
        rooms = {row.code: row for row in self.db.execute(select(Room)).scalars()}
        faculty = {row.id: row for row in self.db.execute(select(Faculty)).scalars()}

        timetable = Timetable(
            name=meta.name,
            semester=meta.semester,
            academic_year=meta.academic_year,
            status=status,
            catalog_version=meta.catalog_version,
            summary=dict(meta.summary),
            created_by_id=meta.created_by_id,
            published_at=datetime.now(timezone.utc) if status == TimetableStatus.published else None,
        )
        for item in assignments:
            start_time, end_time = self.grid.period_label(item.slot.period)
            subject = subjects.get(item.subject_code)
            room = rooms.get(item.room_code)
            member = faculty.get(item.faculty_id)
            timetable.slots.append(
                TimetableSlot(
                    subject_code=item.subject_code,
                    subject_name=subject.name if subject is not None else item.subject_code,
                    session_index=item.session_index,
                    session_type=item.kind.value,
                    day=item.slot.day,
                    period=item.slot.period,
                    start_time=start_time,
                    end_time=end_time,
                    room_code=item.room_code,
                    building=room.building if room is not None else None,
                    faculty_id=item.faculty_id,
                    faculty_name=member.name if member is not None else item.faculty_id,
                )
            )
        self.db.add(timetable)
        self.db.flush()
        return timetable

from __future__ import annotations

import itertools
from collections import Counter, defaultdict
from dataclasses import dataclass
from enum import Enum

from timify.core.exceptions import ConstraintViolation
from timify.services.catalog import CatalogSnapshot, FacultyRecord, RoomRecord, SubjectRecord
from timify.services.slot_grid import Slot, SlotGrid
from timify.services.workload import REQUIRED_ROOM_TYPE, SessionKind


class ConstraintReason(str, Enum):
    outside_grid = "outside_grid"
    lunch_period = "lunch_period"
    instructor_conflict = "instructor_conflict"
    instructor_unavailable = "instructor_unavailable"
    room_conflict = "room_conflict"
    room_type_mismatch = "room_type_mismatch"
    room_capacity = "room_capacity"
    same_day_session = "same_day_session"
    workload_exceeded = "workload_exceeded"


@dataclass(frozen=True)
class Feasible:
    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Infeasible:
    reason: ConstraintReason

    def __bool__(self) -> bool:
        return False


FEASIBLE = Feasible()


@dataclass(frozen=True)
class Placement:
    subject_code: str
    session_index: int
    kind: SessionKind
    slot: Slot
    room_code: str
    faculty_id: str

    @property
    def key(self) -> tuple[str, int]:
        return self.subject_code, self.session_index


class AssignmentLedger:
    """Mutable accumulator for one scheduling run.

    Indexes placements by (faculty, slot) and (room, slot) so conflict checks
    and undo are O(1). Every placement carries a sequence number; ``remove``
    returns it so an undone placement can be restored in its original position.
    """

    def __init__(self) -> None:
        self._by_key: dict[tuple[str, int], Placement] = {}
        self._faculty_at: dict[tuple[str, Slot], Placement] = {}
        self._room_at: dict[tuple[str, Slot], Placement] = {}
        self._subject_days: dict[str, Counter[int]] = defaultdict(Counter)
        self._faculty_sessions: Counter[str] = Counter()
        self._subject_faculty: dict[str, Counter[str]] = defaultdict(Counter)
        self._sequence: dict[tuple[str, int], int] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, key: tuple[str, int]) -> bool:
        return key in self._by_key

    def faculty_booking(self, faculty_id: str, slot: Slot) -> Placement | None:
        return self._faculty_at.get((faculty_id, slot))

    def room_booking(self, room_code: str, slot: Slot) -> Placement | None:
        return self._room_at.get((room_code, slot))

    def subject_days(self, subject_code: str) -> Counter[int]:
        return self._subject_days.get(subject_code, Counter())

    def faculty_sessions(self, faculty_id: str) -> int:
        return self._faculty_sessions[faculty_id]

    def committed_faculty(self, subject_code: str) -> str | None:
        placed = self._subject_faculty.get(subject_code)
        if not placed:
            return None
        return min(placed)

    def place(self, placement: Placement, sequence: int | None = None) -> None:
        if placement.key in self._by_key:
            raise ValueError(f"Session {placement.key} is already placed")
        faculty_key = (placement.faculty_id, placement.slot)
        room_key = (placement.room_code, placement.slot)
        if faculty_key in self._faculty_at:
            raise ValueError(f"Faculty {placement.faculty_id} is already booked at {placement.slot}")
        if room_key in self._room_at:
            raise ValueError(f"Room {placement.room_code} is already booked at {placement.slot}")

        self._by_key[placement.key] = placement
        self._faculty_at[faculty_key] = placement
        self._room_at[room_key] = placement
        self._subject_days[placement.subject_code][placement.slot.day] += 1
        self._faculty_sessions[placement.faculty_id] += 1
        self._subject_faculty[placement.subject_code][placement.faculty_id] += 1
        self._sequence[placement.key] = next(self._counter) if sequence is None else sequence

    def remove(self, placement: Placement) -> int:
        if self._by_key.get(placement.key) != placement:
            raise ValueError(f"Session {placement.key} is not placed as given")
        del self._by_key[placement.key]
        del self._faculty_at[(placement.faculty_id, placement.slot)]
        del self._room_at[(placement.room_code, placement.slot)]

        days = self._subject_days[placement.subject_code]
        days[placement.slot.day] -= 1
        if days[placement.slot.day] <= 0:
            del days[placement.slot.day]
        if not days:
            del self._subject_days[placement.subject_code]

        self._faculty_sessions[placement.faculty_id] -= 1
        if self._faculty_sessions[placement.faculty_id] <= 0:
            del self._faculty_sessions[placement.faculty_id]

        owners = self._subject_faculty[placement.subject_code]
        owners[placement.faculty_id] -= 1
        if owners[placement.faculty_id] <= 0:
            del owners[placement.faculty_id]
        if not owners:
            del self._subject_faculty[placement.subject_code]
        return self._sequence.pop(placement.key)

    def sequence_of(self, placement: Placement) -> int:
        return self._sequence[placement.key]

    def placements(self) -> list[Placement]:
        return sorted(
            self._by_key.values(),
            key=lambda item: (item.slot, item.room_code, item.subject_code, item.session_index),
        )


class ConstraintChecker:
    """Evaluates one candidate placement against a partial assignment.

    Checks run in a fixed order and stop at the first failure; the returned
    reason names that check.
    """

    def __init__(
        self,
        catalog: CatalogSnapshot,
        grid: SlotGrid,
        *,
        allow_same_day: bool = False,
        hours_per_session: float = 1.0,
    ) -> None:
        self.catalog = catalog
        self.grid = grid
        self.allow_same_day = allow_same_day
        self.hours_per_session = hours_per_session

    def evaluate(
        self,
        subject: SubjectRecord,
        kind: SessionKind,
        slot: Slot,
        room: RoomRecord,
        faculty: FacultyRecord,
        ledger: AssignmentLedger,
    ) -> Feasible | Infeasible:
        try:
            self._check_slot(slot)
            self._check_instructor_free(faculty, slot, ledger)
            self._check_instructor_available(faculty, slot)
            self._check_room_free(room, slot, ledger)
            self._check_room_fit(subject, kind, room)
            self._check_same_day(subject, slot, ledger)
            self._check_workload(faculty, ledger)
        except ConstraintViolation as violation:
            return Infeasible(violation.reason)
        return FEASIBLE

    def room_suitability(self, subject: SubjectRecord, kind: SessionKind, room: RoomRecord) -> ConstraintReason | None:
        if room.room_type != REQUIRED_ROOM_TYPE[kind]:
            return ConstraintReason.room_type_mismatch
        if room.capacity < subject.capacity:
            return ConstraintReason.room_capacity
        return None

    def faculty_can_teach(self, faculty: FacultyRecord, slot: Slot) -> bool:
        start, end = self.grid.period_bounds(slot.period)
        return faculty.is_available(slot.day, start, end)

    def _check_slot(self, slot: Slot) -> None:
        if self.grid.is_lunch(slot.period):
            raise ConstraintViolation(ConstraintReason.lunch_period)
        if not self.grid.contains(slot):
            raise ConstraintViolation(ConstraintReason.outside_grid)

    def _check_instructor_free(self, faculty: FacultyRecord, slot: Slot, ledger: AssignmentLedger) -> None:
        if ledger.faculty_booking(faculty.id, slot) is not None:
            raise ConstraintViolation(ConstraintReason.instructor_conflict)

    def _check_instructor_available(self, faculty: FacultyRecord, slot: Slot) -> None:
        if not self.faculty_can_teach(faculty, slot):
            raise ConstraintViolation(ConstraintReason.instructor_unavailable)

    def _check_room_free(self, room: RoomRecord, slot: Slot, ledger: AssignmentLedger) -> None:
        if ledger.room_booking(room.code, slot) is not None:
            raise ConstraintViolation(ConstraintReason.room_conflict)

    def _check_room_fit(self, subject: SubjectRecord, kind: SessionKind, room: RoomRecord) -> None:
        reason = self.room_suitability(subject, kind, room)
        if reason is not None:
            raise ConstraintViolation(reason)

    def _check_same_day(self, subject: SubjectRecord, slot: Slot, ledger: AssignmentLedger) -> None:
        if self.allow_same_day or subject.allow_same_day:
            return
        if ledger.subject_days(subject.code)[slot.day] > 0:
            raise ConstraintViolation(ConstraintReason.same_day_session)

    def _check_workload(self, faculty: FacultyRecord, ledger: AssignmentLedger) -> None:
        scheduled = (ledger.faculty_sessions(faculty.id) + 1) * self.hours_per_session
        if scheduled > faculty.max_hours_per_week:
            raise ConstraintViolation(ConstraintReason.workload_exceeded)

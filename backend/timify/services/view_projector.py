from __future__ import annotations

from dataclasses import dataclass

from timify.models.timetable import TimetableSlot
from timify.services.slot_grid import DEFAULT_GRID, Slot, SlotGrid


@dataclass(frozen=True)
class ViewFilter:
    subject_codes: frozenset[str] | None = None
    faculty_id: str | None = None
    room_code: str | None = None

    @property
    def kind(self) -> str:
        if self.faculty_id is not None:
            return "staff"
        if self.room_code is not None:
            return "room"
        if self.subject_codes is not None:
            return "student"
        return "master"

    def matches(self, entry: "GridEntry") -> bool:
        if self.subject_codes is not None and entry.subject_code not in self.subject_codes:
            return False
        if self.faculty_id is not None and entry.faculty_id != self.faculty_id:
            return False
        if self.room_code is not None and entry.room_code != self.room_code:
            return False
        return True


@dataclass(frozen=True)
class GridEntry:
    subject_code: str
    subject_name: str
    session_index: int
    session_type: str
    day: int
    period: int
    start_time: str
    end_time: str
    room_code: str
    building: str | None
    faculty_id: str
    faculty_name: str


Grid = list[list[list[GridEntry]]]


def entry_from_row(row: TimetableSlot) -> GridEntry:
    return GridEntry(
        subject_code=row.subject_code,
        subject_name=row.subject_name,
        session_index=row.session_index,
        session_type=row.session_type,
        day=row.day,
        period=row.period,
        start_time=row.start_time,
        end_time=row.end_time,
        room_code=row.room_code,
        building=row.building,
        faculty_id=row.faculty_id,
        faculty_name=row.faculty_name,
    )


def project_view(entries: list[GridEntry], view: ViewFilter, grid: SlotGrid = DEFAULT_GRID) -> Grid:
    """Lay entries out as ``grid[day][column]`` with the lunch column removed.

    A filter that matches nothing, such as an unknown faculty id, yields an
    empty grid rather than an error.
    """
    cells: Grid = [[[] for _ in grid.teaching_periods] for _ in range(grid.days)]
    for entry in entries:
        if not grid.contains(Slot(entry.day, entry.period)):
            raise ValueError(f"Entry {entry.subject_code} sits outside the teaching grid at day={entry.day} period={entry.period}")
        if view.matches(entry):
            cells[entry.day][grid.column_index(entry.period)].append(entry)
    for row in cells:
        for cell in row:
            cell.sort(key=lambda item: (item.room_code, item.subject_code))
    return cells


def flatten(cells: Grid) -> list[GridEntry]:
    return [entry for row in cells for cell in row for entry in cell]

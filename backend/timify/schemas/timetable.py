from datetime import datetime

from pydantic import BaseModel, Field

from timify.models.timetable import TimetableStatus


class GenerateRequest(BaseModel):
    name: str = Field(default="Generated Timetable", min_length=1, max_length=200)
    semester: int | None = Field(default=None, ge=1, le=12)
    academic_year: str | None = Field(default=None, max_length=20)
    seed: int | None = None
    publish: bool = True
    accept_partial: bool = True
    allow_same_day_sessions: bool = False
    single_session_per_subject: bool = False
    ignore_credit_limits: bool = False


class PlacementOut(BaseModel):
    subject_code: str
    session_index: int
    session_type: str
    day: int
    period: int
    room_code: str
    faculty_id: str


class UnplacedOut(BaseModel):
    subject_code: str
    session_index: int
    session_type: str
    reason: str
    attempts: dict[str, int] = Field(default_factory=dict)


class ScheduleRunOut(BaseModel):
    state: str
    timetable_id: str | None = None
    timetable_status: TimetableStatus | None = None
    catalog_version: int
    assignments: list[PlacementOut]
    unplaced: list[UnplacedOut]
    nodes_explored: int
    backtracks: int
    budget_exhausted: bool
    relaxations: list[str]
    fingerprint: str


class TimetableOut(BaseModel):
    id: str
    name: str
    semester: int | None = None
    academic_year: str | None = None
    status: TimetableStatus
    catalog_version: int
    summary: dict = Field(default_factory=dict)
    created_by_id: str | None = None
    created_at: datetime | None = None
    published_at: datetime | None = None
    archived_at: datetime | None = None

    model_config = {"from_attributes": True}


class TimetableSlotOut(BaseModel):
    subject_code: str
    subject_name: str
    session_index: int
    session_type: str
    day: int
    period: int
    start_time: str
    end_time: str
    room_code: str
    building: str | None = None
    faculty_id: str
    faculty_name: str

    model_config = {"from_attributes": True}


class TimetableDetailOut(TimetableOut):
    slots: list[TimetableSlotOut] = Field(default_factory=list)


class PeriodOut(BaseModel):
    period: int
    start_time: str
    end_time: str


class GridOut(BaseModel):
    timetable_id: str | None = None
    view: str
    days: list[str]
    periods: list[PeriodOut]
    cells: list[list[list[TimetableSlotOut]]]

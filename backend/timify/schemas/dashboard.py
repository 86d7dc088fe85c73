from pydantic import BaseModel


class AdminDashboardStats(BaseModel):
    total_subjects: int
    faculty_members: int
    rooms_available: int
    timetables_generated: int
    published_timetable_id: str | None = None
    catalog_version: int


class StaffDashboardStats(BaseModel):
    subjects_assigned: int
    weekly_sessions_required: int
    classes_per_week: int
    total_students: int


class StudentDashboardStats(BaseModel):
    enrolled_subjects: int
    total_credits: int
    classes_this_week: int

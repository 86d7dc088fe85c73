from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timify.api.deps import get_current_faculty, get_db, get_repository, require_roles
from timify.api.routes.timetables import render_grid
from timify.models.faculty import Faculty
from timify.models.subject import Subject
from timify.models.user import User, UserRole
from timify.schemas.dashboard import StaffDashboardStats
from timify.schemas.subject import SubjectOut
from timify.schemas.timetable import GridOut
from timify.services.repository import TimetableRepository
from timify.services.view_projector import ViewFilter
from timify.services.workload import session_kinds

router = APIRouter()


@router.get("/dashboard-stats", response_model=StaffDashboardStats)
def dashboard_stats(
    faculty: Faculty = Depends(get_current_faculty),
    repository: TimetableRepository = Depends(get_repository),
) -> StaffDashboardStats:
    subjects_assigned, total_students = repository.db.execute(
        select(func.count(Subject.id), func.coalesce(func.sum(Subject.capacity), 0)).where(
            Subject.faculty_id == faculty.id
        )
    ).one()
    sessions_required = sum(
        len(session_kinds(item)) for item in repository.load_subjects() if item.faculty_id == faculty.id
    )
    return StaffDashboardStats(
        subjects_assigned=subjects_assigned,
        weekly_sessions_required=sessions_required,
        classes_per_week=repository.count_published_slots(faculty_id=faculty.id),
        total_students=total_students,
    )


@router.get("/me/subjects", response_model=list[SubjectOut])
def my_subjects(
    faculty: Faculty = Depends(get_current_faculty),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    return list(
        db.execute(select(Subject).where(Subject.faculty_id == faculty.id).order_by(Subject.code)).scalars()
    )


@router.get("/me/timetable", response_model=GridOut)
def my_timetable(
    faculty: Faculty = Depends(get_current_faculty),
    repository: TimetableRepository = Depends(get_repository),
) -> GridOut:
    return render_grid(repository, repository.published_timetable(), ViewFilter(faculty_id=faculty.id))


@router.get("/rooms/{room_code}/timetable", response_model=GridOut)
def room_timetable(
    room_code: str,
    current_user: User = Depends(require_roles(UserRole.staff, UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> GridOut:
    return render_grid(
        repository,
        repository.published_timetable(),
        ViewFilter(room_code=room_code.strip().upper()),
    )

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db, get_repository, require_roles
from timify.core.config import get_settings
from timify.core.exceptions import GridMismatchError
from timify.models.faculty import Faculty
from timify.models.room import Room
from timify.models.subject import Subject
from timify.models.timetable import Timetable, TimetableStatus
from timify.models.user import User, UserRole
from timify.schemas.dashboard import AdminDashboardStats
from timify.schemas.timetable import (
    GenerateRequest,
    GridOut,
    PeriodOut,
    PlacementOut,
    ScheduleRunOut,
    TimetableDetailOut,
    TimetableOut,
    TimetableSlotOut,
    UnplacedOut,
)
from timify.services.audit import log_activity
from timify.services.catalog import take_snapshot
from timify.services.publisher import TimetablePublisher
from timify.services.repository import TimetableMeta, TimetableRepository
from timify.services.scheduler import ScheduleResult, SchedulerEngine, SchedulerOptions
from timify.services.view_projector import ViewFilter, entry_from_row, project_view

router = APIRouter()
logger = logging.getLogger(__name__)


def render_grid(
    repository: TimetableRepository,
    timetable: Timetable | None,
    view: ViewFilter,
) -> GridOut:
    grid = repository.grid
    cells = [[[] for _ in grid.teaching_periods] for _ in range(grid.days)]
    if timetable is not None:
        entries = [entry_from_row(row) for row in repository.slots_for(timetable.id)]
        try:
            cells = project_view(entries, view, grid)
        except ValueError as exc:
            logger.warning("TIMETABLE GRID MISMATCH | timetable_id=%s | reason=%s", timetable.id, exc)
            raise GridMismatchError(timetable.id, str(exc)) from exc
    periods = []
    for period in grid.teaching_periods:
        start_time, end_time = grid.period_label(period)
        periods.append(PeriodOut(period=period, start_time=start_time, end_time=end_time))
    return GridOut(
        timetable_id=timetable.id if timetable is not None else None,
        view=view.kind,
        days=[grid.day_name(day) for day in range(grid.days)],
        periods=periods,
        cells=[[[TimetableSlotOut.model_validate(entry) for entry in cell] for cell in row] for row in cells],
    )


def _run_out(result: ScheduleResult, timetable_id: str | None, timetable_status: TimetableStatus | None) -> ScheduleRunOut:
    return ScheduleRunOut(
        state=result.state.value,
        timetable_id=timetable_id,
        timetable_status=timetable_status,
        catalog_version=result.catalog_version,
        assignments=[
            PlacementOut(
                subject_code=item.subject_code,
                session_index=item.session_index,
                session_type=item.kind.value,
                day=item.slot.day,
                period=item.slot.period,
                room_code=item.room_code,
                faculty_id=item.faculty_id,
            )
            for item in result.assignments
        ],
        unplaced=[
            UnplacedOut(
                subject_code=item.subject_code,
                session_index=item.session_index,
                session_type=item.kind.value,
                reason=item.reason,
                attempts=item.attempts,
            )
            for item in result.unplaced
        ],
        nodes_explored=result.nodes_explored,
        backtracks=result.backtracks,
        budget_exhausted=result.budget_exhausted,
        relaxations=list(result.relaxations),
        fingerprint=result.fingerprint(),
    )


@router.post("/generate", response_model=ScheduleRunOut)
def generate_timetable(
    payload: GenerateRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> ScheduleRunOut:
    settings = get_settings()
    db = repository.db
    snapshot = take_snapshot(repository)
    options = SchedulerOptions.from_settings(
        settings,
        seed=payload.seed,
        allow_same_day_sessions=payload.allow_same_day_sessions,
        single_session_per_subject=payload.single_session_per_subject,
        enforce_credit_limits=not payload.ignore_credit_limits,
    )
    result = SchedulerEngine(snapshot, repository.grid, options).run()

    if not result.complete and not payload.accept_partial:
        log_activity(
            db,
            user=current_user,
            action="timetable.generate",
            entity_type="timetable",
            details={**result.summary(), "persisted": False},
        )
        db.commit()
        return _run_out(result, None, None)

    summary = result.summary()
    summary["unplaced_sessions"] = [
        {"subject_code": item.subject_code, "session_index": item.session_index, "reason": item.reason}
        for item in result.unplaced
    ]
    meta = TimetableMeta(
        name=payload.name,
        catalog_version=snapshot.version,
        semester=payload.semester,
        academic_year=payload.academic_year,
        created_by_id=current_user.id,
        summary=summary,
    )
    publisher = TimetablePublisher(db, repository)
    if payload.publish:
        timetable_id = publisher.publish(result.assignments, meta, user=current_user)
        timetable_status = TimetableStatus.published
    else:
        timetable_id = publisher.save_draft(result.assignments, meta, user=current_user)
        timetable_status = TimetableStatus.draft
    return _run_out(result, timetable_id, timetable_status)


@router.get("/", response_model=list[TimetableOut])
def list_timetables(
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> list[TimetableOut]:
    return repository.list_timetables()


@router.get("/catalog-version")
def get_catalog_version(
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> dict:
    return {"version": repository.catalog_version()}


@router.get("/dashboard-stats", response_model=AdminDashboardStats)
def get_admin_dashboard_stats(
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> AdminDashboardStats:
    db = repository.db
    published = repository.published_timetable()
    return AdminDashboardStats(
        total_subjects=db.execute(select(func.count(Subject.id))).scalar_one(),
        faculty_members=db.execute(select(func.count(Faculty.id))).scalar_one(),
        rooms_available=db.execute(select(func.count(Room.id))).scalar_one(),
        timetables_generated=db.execute(select(func.count(Timetable.id))).scalar_one(),
        published_timetable_id=published.id if published is not None else None,
        catalog_version=repository.catalog_version(),
    )


@router.get("/published", response_model=TimetableDetailOut)
def get_published_timetable(
    current_user: User = Depends(get_current_user),
    repository: TimetableRepository = Depends(get_repository),
) -> TimetableDetailOut:
    timetable = repository.published_timetable()
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No published timetable")
    return TimetableDetailOut.model_validate(timetable).model_copy(
        update={"slots": [TimetableSlotOut.model_validate(row) for row in repository.slots_for(timetable.id)]}
    )


@router.get("/published/grid", response_model=GridOut)
def get_published_grid(
    faculty_id: str | None = None,
    room_code: str | None = None,
    subject_codes: list[str] | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    repository: TimetableRepository = Depends(get_repository),
) -> GridOut:
    view = _view_from_query(faculty_id, room_code, subject_codes)
    return render_grid(repository, repository.published_timetable(), view)


@router.get("/{timetable_id}", response_model=TimetableDetailOut)
def get_timetable(
    timetable_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> TimetableDetailOut:
    timetable = repository.get_timetable(timetable_id)
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")
    return TimetableDetailOut.model_validate(timetable).model_copy(
        update={"slots": [TimetableSlotOut.model_validate(row) for row in repository.slots_for(timetable.id)]}
    )


@router.get("/{timetable_id}/grid", response_model=GridOut)
def get_timetable_grid(
    timetable_id: str,
    faculty_id: str | None = None,
    room_code: str | None = None,
    subject_codes: list[str] | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin)),
    repository: TimetableRepository = Depends(get_repository),
) -> GridOut:
    timetable = repository.get_timetable(timetable_id)
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")
    return render_grid(repository, timetable, _view_from_query(faculty_id, room_code, subject_codes))


@router.post("/{timetable_id}/publish", response_model=TimetableOut)
def publish_timetable(
    timetable_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> TimetableOut:
    return TimetablePublisher(db).publish_draft(timetable_id, user=current_user)


@router.delete("/{timetable_id}")
def delete_timetable(
    timetable_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    timetable = db.get(Timetable, timetable_id)
    if timetable is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timetable not found")
    if timetable.status == TimetableStatus.published:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="The published timetable cannot be deleted")
    previous_status = timetable.status.value
    log_activity(db, user=current_user, action="timetable.delete", entity_type="timetable", entity_id=timetable.id)
    db.delete(timetable)
    db.commit()
    logger.info("TIMETABLE DELETED | timetable_id=%s | status=%s", timetable_id, previous_status)
    return {"success": True}


def _view_from_query(faculty_id: str | None, room_code: str | None, subject_codes: list[str] | None) -> ViewFilter:
    codes = None
    if subject_codes:
        codes = frozenset(
            code.strip().upper() for raw in subject_codes for code in raw.split(",") if code.strip()
        )
    return ViewFilter(
        subject_codes=codes,
        faculty_id=faculty_id,
        room_code=room_code.strip().upper() if room_code else None,
    )

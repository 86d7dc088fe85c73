import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timify.api.deps import get_db, get_repository, require_roles
from timify.api.routes.timetables import render_grid
from timify.models.credit_limit import CreditLimit
from timify.models.enrollment import EnrollmentStatus, StudentEnrollment
from timify.models.subject import Subject
from timify.models.user import User, UserRole
from timify.schemas.dashboard import StudentDashboardStats
from timify.schemas.subject import SubjectCatalogEntry, SubjectOut
from timify.schemas.timetable import GridOut
from timify.services.audit import log_activity
from timify.services.repository import TimetableRepository
from timify.services.view_projector import ViewFilter

router = APIRouter()
logger = logging.getLogger(__name__)


def _enrolled_counts(db: Session) -> dict[str, int]:
    rows = db.execute(
        select(StudentEnrollment.subject_id, func.count(StudentEnrollment.id))
        .where(StudentEnrollment.status == EnrollmentStatus.enrolled)
        .group_by(StudentEnrollment.subject_id)
    ).all()
    return {subject_id: count for subject_id, count in rows}


def _active_subjects(db: Session, student_id: str) -> list[Subject]:
    return list(
        db.execute(
            select(Subject)
            .join(StudentEnrollment, StudentEnrollment.subject_id == Subject.id)
            .where(
                StudentEnrollment.student_id == student_id,
                StudentEnrollment.status == EnrollmentStatus.enrolled,
            )
            .order_by(Subject.semester, Subject.code)
        ).scalars()
    )


def _subject_by_code(db: Session, code: str) -> Subject:
    subject = db.execute(select(Subject).where(Subject.code == code.strip().upper())).scalar_one_or_none()
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    return subject


@router.get("/dashboard-stats", response_model=StudentDashboardStats)
def dashboard_stats(
    current_user: User = Depends(require_roles(UserRole.student)),
    repository: TimetableRepository = Depends(get_repository),
) -> StudentDashboardStats:
    enrolled, total_credits = repository.db.execute(
        select(func.count(Subject.id), func.coalesce(func.sum(Subject.credits), 0))
        .join(StudentEnrollment, StudentEnrollment.subject_id == Subject.id)
        .where(
            StudentEnrollment.student_id == current_user.id,
            StudentEnrollment.status == EnrollmentStatus.enrolled,
        )
    ).one()
    codes = frozenset(item.code for item in _active_subjects(repository.db, current_user.id))
    return StudentDashboardStats(
        enrolled_subjects=enrolled,
        total_credits=total_credits,
        classes_this_week=repository.count_published_slots(subject_codes=codes),
    )


@router.get("/subjects", response_model=list[SubjectCatalogEntry])
def list_available_subjects(
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> list[SubjectCatalogEntry]:
    counts = _enrolled_counts(db)
    entries: list[SubjectCatalogEntry] = []
    for subject in db.execute(select(Subject).order_by(Subject.semester, Subject.code)).scalars():
        enrolled = counts.get(subject.id, 0)
        entry = SubjectCatalogEntry.model_validate(subject)
        entries.append(
            entry.model_copy(update={"enrolled_count": enrolled, "seats_left": max(subject.capacity - enrolled, 0)})
        )
    return entries


@router.post("/enrollments/{subject_code}", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def enroll(
    subject_code: str,
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = _subject_by_code(db, subject_code)
    enrollment = db.execute(
        select(StudentEnrollment).where(
            StudentEnrollment.student_id == current_user.id,
            StudentEnrollment.subject_id == subject.id,
        )
    ).scalar_one_or_none()
    if enrollment is not None and enrollment.status == EnrollmentStatus.enrolled:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already enrolled in this subject")

    if _enrolled_counts(db).get(subject.id, 0) >= subject.capacity:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject is at full capacity")

    limit = db.execute(
        select(CreditLimit).where(CreditLimit.semester_number == subject.semester)
    ).scalar_one_or_none()
    if limit is not None:
        current = sum(item.credits for item in _active_subjects(db, current_user.id) if item.semester == subject.semester)
        if current + subject.credits > limit.max_credits:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Enrolling would exceed the semester {subject.semester} credit limit of {limit.max_credits}",
            )

    if enrollment is None:
        db.add(StudentEnrollment(student_id=current_user.id, subject_id=subject.id))
    else:
        enrollment.status = EnrollmentStatus.enrolled
    log_activity(db, user=current_user, action="enrollment.create", entity_type="subject", entity_id=subject.code)
    db.commit()
    logger.info("STUDENT ENROLLED | student_id=%s | subject=%s", current_user.id, subject.code)
    return subject


@router.delete("/enrollments/{subject_code}")
def drop_enrollment(
    subject_code: str,
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> dict:
    subject = _subject_by_code(db, subject_code)
    enrollment = db.execute(
        select(StudentEnrollment).where(
            StudentEnrollment.student_id == current_user.id,
            StudentEnrollment.subject_id == subject.id,
            StudentEnrollment.status == EnrollmentStatus.enrolled,
        )
    ).scalar_one_or_none()
    if enrollment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enrollment not found")
    enrollment.status = EnrollmentStatus.dropped
    log_activity(db, user=current_user, action="enrollment.drop", entity_type="subject", entity_id=subject.code)
    db.commit()
    return {"success": True}


@router.get("/me/subjects", response_model=list[SubjectOut])
def my_subjects(
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    return _active_subjects(db, current_user.id)


@router.get("/me/timetable", response_model=GridOut)
def my_timetable(
    current_user: User = Depends(require_roles(UserRole.student)),
    repository: TimetableRepository = Depends(get_repository),
) -> GridOut:
    codes = frozenset(item.code for item in _active_subjects(repository.db, current_user.id))
    return render_grid(repository, repository.published_timetable(), ViewFilter(subject_codes=codes))

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db, require_roles
from timify.models.enrollment import StudentEnrollment
from timify.models.faculty import Faculty
from timify.models.subject import Subject
from timify.models.user import User, UserRole
from timify.schemas.subject import SubjectCreate, SubjectOut, SubjectUpdate
from timify.services.audit import log_activity
from timify.services.catalog import find_prerequisite_cycle
from timify.services.repository import bump_catalog_version

router = APIRouter()


def validate_references(db: Session, *, code: str, faculty_id: str | None, prerequisite_codes: list[str]) -> None:
    if faculty_id is not None and db.get(Faculty, faculty_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assigned faculty does not exist")

    graph = {row.code: tuple(row.prerequisite_codes or ()) for row in db.execute(select(Subject)).scalars()}
    unknown = sorted(item for item in prerequisite_codes if item not in graph)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown prerequisite subjects: {', '.join(unknown)}",
        )
    graph[code] = tuple(prerequisite_codes)
    cycle = find_prerequisite_cycle(graph)
    if cycle:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Prerequisite cycle detected: {' -> '.join(cycle)}",
        )


@router.get("/", response_model=list[SubjectOut])
def list_subjects(
    semester: int | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    query = select(Subject).order_by(Subject.semester, Subject.code)
    if semester is not None:
        query = query.where(Subject.semester == semester)
    return list(db.execute(query).scalars())


@router.post("/", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    existing = db.execute(select(Subject).where(Subject.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject code already exists")
    validate_references(
        db,
        code=payload.code,
        faculty_id=payload.faculty_id,
        prerequisite_codes=payload.prerequisite_codes,
    )

    subject = Subject(**payload.model_dump())
    db.add(subject)
    db.flush()
    bump_catalog_version(db)
    log_activity(db, user=current_user, action="subject.create", entity_type="subject", entity_id=subject.code)
    db.commit()
    db.refresh(subject)
    return subject


@router.put("/{subject_id}", response_model=SubjectOut)
def update_subject(
    subject_id: str,
    payload: SubjectUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")

    data = payload.model_dump(exclude_unset=True)
    if "faculty_id" in data or "prerequisite_codes" in data:
        prerequisites = data.get("prerequisite_codes")
        if prerequisites is None:
            prerequisites = list(subject.prerequisite_codes or [])
        if subject.code in prerequisites:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A subject cannot be its own prerequisite")
        validate_references(
            db,
            code=subject.code,
            faculty_id=data.get("faculty_id"),
            prerequisite_codes=prerequisites,
        )
        data["prerequisite_codes"] = prerequisites

    for key, value in data.items():
        setattr(subject, key, value)
    if data:
        bump_catalog_version(db)
        log_activity(
            db,
            user=current_user,
            action="subject.update",
            entity_type="subject",
            entity_id=subject.code,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(subject)
    return subject


@router.delete("/{subject_id}")
def delete_subject(
    subject_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    subject = db.get(Subject, subject_id)
    if subject is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    dependants = sorted(
        row.code
        for row in db.execute(select(Subject).where(Subject.id != subject_id)).scalars()
        if subject.code in (row.prerequisite_codes or [])
    )
    if dependants:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Subject is a prerequisite of: {', '.join(dependants)}",
        )

    db.execute(delete(StudentEnrollment).where(StudentEnrollment.subject_id == subject_id))
    log_activity(db, user=current_user, action="subject.delete", entity_type="subject", entity_id=subject.code)
    db.delete(subject)
    bump_catalog_version(db)
    db.commit()
    return {"success": True}

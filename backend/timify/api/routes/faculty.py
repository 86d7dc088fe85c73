from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db, require_roles
from timify.models.faculty import Faculty
from timify.models.subject import Subject
from timify.models.user import User, UserRole
from timify.schemas.faculty import FacultyCreate, FacultyOut, FacultyUpdate
from timify.services.audit import log_activity
from timify.services.repository import bump_catalog_version

router = APIRouter()


@router.get("/", response_model=list[FacultyOut])
def list_faculty(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[FacultyOut]:
    return list(db.execute(select(Faculty).order_by(Faculty.name)).scalars())


@router.post("/", response_model=FacultyOut, status_code=status.HTTP_201_CREATED)
def create_faculty(
    payload: FacultyCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> FacultyOut:
    existing = db.execute(select(Faculty).where(Faculty.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Faculty email already exists")
    if payload.user_id is not None and db.get(User, payload.user_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Linked user does not exist")

    faculty = Faculty(**payload.model_dump())
    db.add(faculty)
    db.flush()
    bump_catalog_version(db)
    log_activity(db, user=current_user, action="faculty.create", entity_type="faculty", entity_id=faculty.id)
    db.commit()
    db.refresh(faculty)
    return faculty


@router.put("/{faculty_id}", response_model=FacultyOut)
def update_faculty(
    faculty_id: str,
    payload: FacultyUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> FacultyOut:
    faculty = db.get(Faculty, faculty_id)
    if faculty is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Faculty not found")

    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(faculty, key, value)
    if data:
        bump_catalog_version(db)
        log_activity(
            db,
            user=current_user,
            action="faculty.update",
            entity_type="faculty",
            entity_id=faculty.id,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(faculty)
    return faculty


@router.delete("/{faculty_id}")
def delete_faculty(
    faculty_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    faculty = db.get(Faculty, faculty_id)
    if faculty is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Faculty not found")
    cleared = db.execute(
        update(Subject).where(Subject.faculty_id == faculty_id).values(faculty_id=None)
    ).rowcount
    log_activity(
        db,
        user=current_user,
        action="faculty.delete",
        entity_type="faculty",
        entity_id=faculty.id,
        details={"subjects_unassigned": cleared},
    )
    db.delete(faculty)
    bump_catalog_version(db)
    db.commit()
    return {"success": True, "subjects_unassigned": cleared}

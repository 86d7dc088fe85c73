import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db
from timify.core.security import create_access_token, get_password_hash, verify_password
from timify.models.faculty import Faculty
from timify.models.user import User, UserRole
from timify.schemas.user import Token, UserCreate, UserLogin, UserOut
from timify.services.repository import bump_catalog_version

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_FACULTY_AVAILABILITY = {
    day: {"available": True, "start": "09:00", "end": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def ensure_faculty_profile(db: Session, user: User, max_hours_per_week: int | None = None) -> bool:
    """Link a staff account to a faculty record, creating one when none matches its email."""
    faculty = db.execute(select(Faculty).where(Faculty.email == user.email)).scalar_one_or_none()
    if faculty is None:
        db.add(
            Faculty(
                user_id=user.id,
                name=user.name,
                email=user.email,
                department=user.department or "General",
                max_hours_per_week=max_hours_per_week or 20,
                availability=dict(DEFAULT_FACULTY_AVAILABILITY),
            )
        )
        return True
    if faculty.user_id is None:
        faculty.user_id = user.id
        return True
    return False


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Session = Depends(get_db)) -> UserOut:
    existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
        department=payload.department,
    )
    db.add(user)
    db.flush()
    if payload.role == UserRole.staff and ensure_faculty_profile(db, user, payload.max_hours_per_week):
        bump_catalog_version(db)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered") from exc

    db.refresh(user)
    logger.info("USER REGISTERED | user_id=%s | role=%s", user.id, user.role.value)
    return user


@router.post("/login", response_model=Token)
def login(payload: UserLogin, db: Session = Depends(get_db)) -> Token:
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    if payload.role and payload.role != user.role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Role does not match user account")

    access_token = create_access_token(user.id)
    return Token(access_token=access_token, token_type="bearer", user=user)


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return current_user

from collections.abc import Callable, Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from timify.core.config import get_settings
from timify.core.security import decode_token
from timify.db.session import SessionLocal
from timify.models.faculty import Faculty
from timify.models.user import User, UserRole
from timify.services.repository import TimetableRepository
from timify.services.slot_grid import SlotGrid, grid_from_settings

bearer_scheme = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_slot_grid() -> SlotGrid:
    return grid_from_settings(get_settings())


def get_repository(
    db: Session = Depends(get_db),
    grid: SlotGrid = Depends(get_slot_grid),
) -> TimetableRepository:
    return TimetableRepository(db, grid)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        user_id = decode_token(credentials.credentials).get("sub")
    except JWTError as exc:
        raise unauthorized from exc
    if not user_id:
        raise unauthorized

    user = db.get(User, user_id)
    if user is None:
        raise unauthorized
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed = frozenset(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


def get_current_faculty(
    current_user: User = Depends(require_roles(UserRole.staff)),
    db: Session = Depends(get_db),
) -> Faculty:
    """Faculty profile of the signed-in staff user, matched by link or by email."""
    faculty = db.execute(
        select(Faculty).where(or_(Faculty.user_id == current_user.id, Faculty.email == current_user.email))
    ).scalars().first()
    if faculty is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Faculty profile not found")
    return faculty

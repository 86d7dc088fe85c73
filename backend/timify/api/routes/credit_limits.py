from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db, require_roles
from timify.core.config import get_settings
from timify.models.credit_limit import CreditLimit
from timify.models.user import User, UserRole
from timify.schemas.credit_limit import CreditLimitOut, CreditLimitUpdate
from timify.services.audit import log_activity
from timify.services.repository import bump_catalog_version

router = APIRouter()


def _get_limit(db: Session, semester: int) -> CreditLimit | None:
    return db.execute(select(CreditLimit).where(CreditLimit.semester_number == semester)).scalar_one_or_none()


def _check_semester(semester: int) -> None:
    if not 1 <= semester <= get_settings().credit_limit_semesters:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Semester out of range")


@router.get("/", response_model=list[CreditLimitOut])
def list_credit_limits(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CreditLimitOut]:
    stored = {row.semester_number: row.max_credits for row in db.execute(select(CreditLimit)).scalars()}
    semesters = set(range(1, get_settings().credit_limit_semesters + 1)) | set(stored)
    return [
        CreditLimitOut(semester_number=number, max_credits=stored.get(number), configured=number in stored)
        for number in sorted(semesters)
    ]


@router.put("/{semester}", response_model=CreditLimitOut)
def upsert_credit_limit(
    semester: int,
    payload: CreditLimitUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> CreditLimitOut:
    _check_semester(semester)
    row = _get_limit(db, semester)
    if row is None:
        row = CreditLimit(semester_number=semester, max_credits=payload.max_credits)
        db.add(row)
    else:
        row.max_credits = payload.max_credits
    bump_catalog_version(db)
    log_activity(
        db,
        user=current_user,
        action="credit_limit.upsert",
        entity_type="credit_limit",
        entity_id=str(semester),
        details={"max_credits": payload.max_credits},
    )
    db.commit()
    return CreditLimitOut(semester_number=semester, max_credits=payload.max_credits, configured=True)


@router.delete("/{semester}")
def delete_credit_limit(
    semester: int,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    row = _get_limit(db, semester)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Credit limit not found")
    db.delete(row)
    bump_catalog_version(db)
    log_activity(db, user=current_user, action="credit_limit.delete", entity_type="credit_limit", entity_id=str(semester))
    db.commit()
    return {"success": True}

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from timify.api.deps import get_current_user, get_db, require_roles
from timify.models.room import Room
from timify.models.user import User, UserRole
from timify.schemas.room import RoomCreate, RoomOut, RoomUpdate
from timify.services.audit import log_activity
from timify.services.repository import bump_catalog_version

router = APIRouter()


@router.get("/", response_model=list[RoomOut])
def list_rooms(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[RoomOut]:
    return list(db.execute(select(Room).order_by(Room.code)).scalars())


@router.post("/", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RoomOut:
    existing = db.execute(select(Room).where(Room.code == payload.code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room code already exists")
    room = Room(**payload.model_dump())
    db.add(room)
    db.flush()
    bump_catalog_version(db)
    log_activity(db, user=current_user, action="room.create", entity_type="room", entity_id=room.id)
    db.commit()
    db.refresh(room)
    return room


@router.put("/{room_id}", response_model=RoomOut)
def update_room(
    room_id: str,
    payload: RoomUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RoomOut:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(room, key, value)
    if data:
        bump_catalog_version(db)
        log_activity(
            db,
            user=current_user,
            action="room.update",
            entity_type="room",
            entity_id=room.id,
            details={"fields": sorted(data)},
        )
    db.commit()
    db.refresh(room)
    return room


@router.delete("/{room_id}")
def delete_room(
    room_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    log_activity(db, user=current_user, action="room.delete", entity_type="room", entity_id=room.code)
    db.delete(room)
    bump_catalog_version(db)
    db.commit()
    return {"success": True}

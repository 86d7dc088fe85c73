import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timify.db.base import Base


class TimetableStatus(str, Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class Timetable(Base):
    __tablename__ = "timetables"
    __table_args__ = (
        Index(
            "uq_timetables_single_published",
            "status",
            unique=True,
            sqlite_where=text("status = 'published'"),
            postgresql_where=text("status = 'published'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    semester: Mapped[int | None] = mapped_column(Integer, nullable=True)
    academic_year: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[TimetableStatus] = mapped_column(
        SAEnum(TimetableStatus, name="timetable_status"), nullable=False, default=TimetableStatus.draft
    )
    catalog_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    slots: Mapped[list["TimetableSlot"]] = relationship(
        back_populates="timetable", cascade="all, delete-orphan"
    )


class TimetableSlot(Base):
    __tablename__ = "timetable_slots"
    __table_args__ = (
        UniqueConstraint("timetable_id", "day", "period", "room_code", name="uq_timetable_slots_room"),
        UniqueConstraint("timetable_id", "day", "period", "faculty_id", name="uq_timetable_slots_faculty"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timetable_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("timetables.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    subject_name: Mapped[str] = mapped_column(String(200), nullable=False)
    session_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    session_type: Mapped[str] = mapped_column(String(20), nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    room_code: Mapped[str] = mapped_column(String(50), nullable=False)
    building: Mapped[str | None] = mapped_column(String(200), nullable=True)
    faculty_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    faculty_name: Mapped[str] = mapped_column(String(200), nullable=False)

    timetable: Mapped[Timetable] = relationship(back_populates="slots")

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from timify.db.base import Base


class SubjectType(str, Enum):
    theory = "theory"
    lab = "lab"
    lab_cum_theory = "lab_cum_theory"


class Subject(Base):
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    type: Mapped[SubjectType] = mapped_column(SAEnum(SubjectType, name="subject_type"), nullable=False)
    min_theory_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_lab_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    faculty_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    prerequisite_codes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    allow_same_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

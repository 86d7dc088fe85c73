from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from timify.schemas.common import TIME_PATTERN, WEEKDAY_KEYS, parse_time_to_minutes


class DayAvailability(BaseModel):
    available: bool = True
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "DayAvailability":
        if self.available and parse_time_to_minutes(self.end) <= parse_time_to_minutes(self.start):
            raise ValueError("end must be after start")
        return self


def _normalize_availability(value: dict[str, DayAvailability]) -> dict[str, DayAvailability]:
    normalized: dict[str, DayAvailability] = {}
    for key, window in value.items():
        day = key.strip().lower()
        if day not in WEEKDAY_KEYS:
            raise ValueError(f"Invalid weekday '{key}'")
        normalized[day] = window
    return normalized


class FacultyBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=50)
    department: str = Field(min_length=1, max_length=200)
    max_hours_per_week: int = Field(default=20, ge=1, le=60)
    availability: dict[str, DayAvailability] = Field(default_factory=dict)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, value: dict[str, DayAvailability]) -> dict[str, DayAvailability]:
        return _normalize_availability(value)


class FacultyCreate(FacultyBase):
    user_id: str | None = None


class FacultyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, min_length=1, max_length=200)
    max_hours_per_week: int | None = Field(default=None, ge=1, le=60)
    availability: dict[str, DayAvailability] | None = None

    @field_validator("availability")
    @classmethod
    def validate_availability(
        cls, value: dict[str, DayAvailability] | None
    ) -> dict[str, DayAvailability] | None:
        if value is None:
            return None
        return _normalize_availability(value)


class FacultyOut(FacultyBase):
    id: str
    user_id: str | None = None

    model_config = {"from_attributes": True}

from pydantic import BaseModel, Field, field_validator, model_validator

from timify.models.subject import SubjectType
from timify.schemas.common import normalize_code


def _normalize_prerequisites(values: list[str]) -> list[str]:
    normalized: list[str] = []
    for item in values:
        code = normalize_code(item)
        if code not in normalized:
            normalized.append(code)
    return normalized


class SubjectBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    semester: int = Field(ge=1, le=12)
    credits: int = Field(ge=0, le=40)
    type: SubjectType
    min_theory_hours: int = Field(default=0, ge=0, le=20)
    min_lab_hours: int = Field(default=0, ge=0, le=20)
    capacity: int = Field(default=30, ge=1, le=1000)
    faculty_id: str | None = None
    department: str | None = Field(default=None, max_length=200)
    prerequisite_codes: list[str] = Field(default_factory=list, max_length=50)
    allow_same_day: bool = False

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        return normalize_code(value)

    @field_validator("prerequisite_codes")
    @classmethod
    def validate_prerequisites(cls, values: list[str]) -> list[str]:
        return _normalize_prerequisites(values)

    @model_validator(mode="after")
    def validate_self_prerequisite(self) -> "SubjectBase":
        if self.code in self.prerequisite_codes:
            raise ValueError("A subject cannot be its own prerequisite")
        return self


class SubjectCreate(SubjectBase):
    pass


class SubjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    semester: int | None = Field(default=None, ge=1, le=12)
    credits: int | None = Field(default=None, ge=0, le=40)
    type: SubjectType | None = None
    min_theory_hours: int | None = Field(default=None, ge=0, le=20)
    min_lab_hours: int | None = Field(default=None, ge=0, le=20)
    capacity: int | None = Field(default=None, ge=1, le=1000)
    faculty_id: str | None = None
    department: str | None = Field(default=None, max_length=200)
    prerequisite_codes: list[str] | None = Field(default=None, max_length=50)
    allow_same_day: bool | None = None

    @field_validator("prerequisite_codes")
    @classmethod
    def validate_prerequisites(cls, values: list[str] | None) -> list[str] | None:
        if values is None:
            return None
        return _normalize_prerequisites(values)


class SubjectOut(SubjectBase):
    id: str

    model_config = {"from_attributes": True}


class SubjectCatalogEntry(SubjectOut):
    enrolled_count: int = 0
    seats_left: int = 0

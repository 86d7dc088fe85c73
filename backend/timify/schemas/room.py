from pydantic import BaseModel, Field, field_validator

from timify.models.room import RoomType
from timify.schemas.common import normalize_code


class RoomBase(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    building: str = Field(min_length=1, max_length=200)
    capacity: int = Field(ge=1, le=1000)
    type: RoomType

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        return normalize_code(value)


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    building: str | None = Field(default=None, min_length=1, max_length=200)
    capacity: int | None = Field(default=None, ge=1, le=1000)
    type: RoomType | None = None


class RoomOut(RoomBase):
    id: str

    model_config = {"from_attributes": True}

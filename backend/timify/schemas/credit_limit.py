from pydantic import BaseModel, Field


class CreditLimitUpdate(BaseModel):
    max_credits: int = Field(ge=1, le=100)


class CreditLimitOut(BaseModel):
    semester_number: int
    max_credits: int | None = None
    configured: bool = False

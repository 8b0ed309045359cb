from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from stockroom.schemas.common import PaginationMeta


class BranchCreateIn(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    code: str = Field(min_length=2, max_length=30)

    @field_validator("name", "code")
    @classmethod
    def strip_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value cannot be empty")
        return cleaned


class BranchOut(BaseModel):
    id: str
    name: str
    code: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class BranchListOut(BaseModel):
    items: list[BranchOut]
    pagination: PaginationMeta

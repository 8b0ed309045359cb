from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.schemas.catalog import MAX_LINE_QTY
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockAlertOut


class AdjustmentLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    variant_id: str = Field(min_length=1, max_length=36)
    actual_qty: int = Field(ge=0, le=MAX_LINE_QTY, description="Physically counted quantity in the variant's own unit")


class AdjustmentCreateIn(BaseModel):
    transaction_date: Optional[datetime] = None
    branch_id: str = Field(min_length=1, max_length=36)
    notes: Optional[str] = Field(default=None, max_length=255)
    items: list[AdjustmentLineIn] = Field(max_length=500)

    @field_validator("notes")
    @classmethod
    def normalize_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "branch_id": "branch-a",
                "notes": "Monthly stock-take",
                "items": [{"item_id": "item-id", "variant_id": "variant-id", "actual_qty": 3}],
            }
        }
    )


class AdjustmentOut(BaseModel):
    id: str
    submission_id: str
    transaction_date: datetime
    branch_id: str
    item_id: str
    variant_id: str
    actual_qty: int
    conversion_amount: int
    before_amount: int
    final_amount: int
    final_total_amount: int
    total_gap_amount: int
    gap_direction: Literal["increase", "decrease", "none"]
    notes: Optional[str] = None
    status: str
    created_by: str
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None
    created_at: datetime


class AdjustmentCreateOut(BaseModel):
    items: list[AdjustmentOut]
    skipped_zero_gap: int = 0
    alerts: list[StockAlertOut] = Field(default_factory=list)


class AdjustmentListOut(BaseModel):
    items: list[AdjustmentOut]
    pagination: PaginationMeta

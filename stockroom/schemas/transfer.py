from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.schemas.catalog import MAX_LINE_QTY
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockAlertOut


class TransferLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    variant_id: str = Field(min_length=1, max_length=36)
    qty: int = Field(le=MAX_LINE_QTY, description="Quantity in the variant's own unit, must be positive")


class TransferCreateIn(BaseModel):
    transaction_date: Optional[datetime] = None
    from_branch_id: str = Field(min_length=1, max_length=36)
    to_branch_id: str = Field(min_length=1, max_length=36)
    notes: Optional[str] = Field(default=None, max_length=255)
    items: list[TransferLineIn] = Field(max_length=500)

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
                "transaction_date": "2026-03-01T09:00:00Z",
                "from_branch_id": "branch-a",
                "to_branch_id": "branch-b",
                "notes": "Weekly restock",
                "items": [{"item_id": "item-id", "variant_id": "variant-id", "qty": 20}],
            }
        }
    )


class TransferLineOut(BaseModel):
    id: str
    item_id: str
    variant_id: str
    qty: int
    conversion_amount: int
    base_qty: int


class TransferOut(BaseModel):
    id: str
    transaction_date: datetime
    from_branch_id: str
    to_branch_id: str
    status: str
    notes: Optional[str] = None
    created_by: str
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None
    created_at: datetime
    items: list[TransferLineOut]
    alerts: list[StockAlertOut] = Field(default_factory=list)


class TransferListOut(BaseModel):
    items: list[TransferOut]
    pagination: PaginationMeta

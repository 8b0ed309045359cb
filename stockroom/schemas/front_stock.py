from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockroom.schemas.catalog import MAX_LINE_QTY
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockAlertOut, VariantDisplayQtyOut


class FrontStockLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    variant_id: str = Field(min_length=1, max_length=36)
    qty: int = Field(
        ge=-MAX_LINE_QTY,
        le=MAX_LINE_QTY,
        description="Positive moves rear to front, negative moves front to rear. Zero is rejected.",
    )


class FrontStockTransferCreateIn(BaseModel):
    transaction_date: Optional[datetime] = None
    branch_id: str = Field(min_length=1, max_length=36)
    notes: Optional[str] = Field(default=None, max_length=255)
    items: list[FrontStockLineIn] = Field(max_length=500)

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
                "notes": "Morning shelf refill",
                "items": [
                    {"item_id": "item-id", "variant_id": "variant-dus", "qty": 2},
                    {"item_id": "other-item-id", "variant_id": "variant-pcs", "qty": -5},
                ],
            }
        }
    )


class FrontStockLineOut(BaseModel):
    id: str
    item_id: str
    variant_id: str
    qty: int
    conversion_amount: int
    base_qty: int


class FrontStockTransferOut(BaseModel):
    id: str
    transaction_date: datetime
    branch_id: str
    status: str
    notes: Optional[str] = None
    created_by: str
    voided_by: Optional[str] = None
    voided_at: Optional[datetime] = None
    created_at: datetime
    items: list[FrontStockLineOut]
    alerts: list[StockAlertOut] = Field(default_factory=list)


class FrontStockTransferListOut(BaseModel):
    items: list[FrontStockTransferOut]
    pagination: PaginationMeta


class FrontStockItemOut(BaseModel):
    item_id: str
    code: str
    name: str
    quantity: int
    front_quantity: int
    rear_quantity: int
    front_variants: list[VariantDisplayQtyOut]


class FrontStockItemListOut(BaseModel):
    items: list[FrontStockItemOut]
    pagination: PaginationMeta

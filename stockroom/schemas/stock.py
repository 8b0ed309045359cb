from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from stockroom.schemas.common import PaginationMeta


class StockAlertOut(BaseModel):
    branch_id: str
    item_id: str
    quantity: int
    message: str
    bucket: Literal["total", "front", "rear"] = "total"


class VariantDisplayQtyOut(BaseModel):
    variant_id: str
    code: str
    unit: str
    conversion_amount: int
    quantity: float
    whole: int
    remainder: int
    is_exact: bool


class StockLevelOut(BaseModel):
    branch_id: str
    item_id: str
    quantity: int
    front_quantity: int = 0
    rear_quantity: int = 0
    is_negative: bool
    variants: list[VariantDisplayQtyOut]


class StockMovementOut(BaseModel):
    id: str
    branch_id: str
    item_id: str
    variant_id: str | None = None
    qty_delta: int
    front_qty_delta: int = 0
    reason: str
    reference_id: str | None = None
    note: str | None = None
    created_at: datetime


class StockMovementListOut(BaseModel):
    items: list[StockMovementOut]
    pagination: PaginationMeta

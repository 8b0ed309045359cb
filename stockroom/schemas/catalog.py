from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockroom.schemas.common import PaginationMeta

MAX_CONVERSION_AMOUNT = 1_000_000
MAX_LINE_QTY = 1_000_000_000


def _strip_required(value: str, field_name: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{field_name} is required")
    return cleaned


def _strip_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class UnitCreateIn(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=100)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return _strip_required(value, "code").upper()

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _strip_required(value, "name")

    model_config = ConfigDict(json_schema_extra={"example": {"code": "DUS", "name": "Dus (karton)"}})


class UnitUpdateIn(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _strip_required(value, "code").upper()

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _strip_required(value, "name")

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "UnitUpdateIn":
        if self.code is None and self.name is None:
            raise ValueError("At least one field must be provided")
        return self


class UnitOut(BaseModel):
    id: str
    code: str
    name: str
    created_at: datetime
    updated_at: datetime


class UnitListOut(BaseModel):
    items: list[UnitOut]
    pagination: PaginationMeta


class VariantCreateIn(BaseModel):
    code: str = Field(min_length=1, max_length=100)
    unit: str = Field(min_length=1, max_length=20, description="Unit code, e.g. PCS")
    conversion_amount: int = Field(
        ge=1,
        le=MAX_CONVERSION_AMOUNT,
        description="Base units held by one of this variant. 1 marks the base unit.",
    )
    sell_price: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        return _strip_required(value, "code")

    @field_validator("unit")
    @classmethod
    def normalize_unit(cls, value: str) -> str:
        return _strip_required(value, "unit").upper()

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "IDM-DUS",
                "unit": "DUS",
                "conversion_amount": 40,
                "sell_price": 120000,
            }
        }
    )


class VariantUpdateIn(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=100)
    unit: Optional[str] = Field(default=None, min_length=1, max_length=20)
    conversion_amount: Optional[int] = Field(default=None, ge=1, le=MAX_CONVERSION_AMOUNT)
    sell_price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _strip_required(value, "code")

    @field_validator("unit")
    @classmethod
    def normalize_unit(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _strip_required(value, "unit").upper()

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "VariantUpdateIn":
        if all(
            getattr(self, name) is None
            for name in ("code", "unit", "conversion_amount", "sell_price")
        ):
            raise ValueError("At least one field must be provided")
        return self


class ItemCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=100)
    category_id: Optional[str] = Field(default=None, max_length=36)
    supplier_id: Optional[str] = Field(default=None, max_length=36)
    is_active: bool = True
    recorded_buy_price: Decimal = Field(default=Decimal("0"), ge=0)
    variants: list[VariantCreateIn] = Field(min_length=1)

    @field_validator("name", "code")
    @classmethod
    def validate_text(cls, value: str) -> str:
        return _strip_required(value, "value")

    @field_validator("category_id", "supplier_id")
    @classmethod
    def normalize_reference(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Indomie Goreng",
                "code": "IDM-GRG",
                "category_id": "category-id",
                "supplier_id": "supplier-id",
                "is_active": True,
                "recorded_buy_price": 2800,
                "variants": [
                    {"code": "IDM-PCS", "unit": "PCS", "conversion_amount": 1, "sell_price": 3500},
                    {"code": "IDM-DUS", "unit": "DUS", "conversion_amount": 40, "sell_price": 128000},
                ],
            }
        }
    )


class ItemUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category_id: Optional[str] = Field(default=None, max_length=36)
    supplier_id: Optional[str] = Field(default=None, max_length=36)
    is_active: Optional[bool] = None
    recorded_buy_price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _strip_required(value, "name")

    @field_validator("category_id", "supplier_id")
    @classmethod
    def normalize_reference(cls, value: Optional[str]) -> Optional[str]:
        return _strip_optional(value)

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "ItemUpdateIn":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class BulkVariantPriceIn(BaseModel):
    variant_ids: list[str] = Field(min_length=1, max_length=500)
    sell_price: Decimal = Field(ge=0)


class BulkVariantPriceOut(BaseModel):
    updated: int


class VariantOut(BaseModel):
    id: str
    item_id: str
    code: str
    unit: str
    conversion_amount: int
    is_base_unit: bool
    sell_price: float
    recorded_profit_amount: float
    recorded_profit_percentage: float
    created_at: datetime
    updated_at: datetime


class ItemOut(BaseModel):
    id: str
    name: str
    code: str
    category_id: Optional[str] = None
    supplier_id: Optional[str] = None
    is_active: bool
    recorded_buy_price: float
    stock: Optional[int] = Field(default=None, description="Base-unit quantity at the requested branch")
    variants: list[VariantOut]
    created_at: datetime
    updated_at: datetime


class ItemListOut(BaseModel):
    items: list[ItemOut]
    pagination: PaginationMeta

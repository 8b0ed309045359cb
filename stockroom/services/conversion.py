from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from stockroom.core.config import settings
from stockroom.core.errors import INVALID_CONVERSION_AMOUNT, QTY_OUT_OF_RANGE, ValidationError


class HasConversionAmount(Protocol):
    conversion_amount: int


@dataclass(frozen=True)
class DisplayQuantity:
    """A base-unit quantity expressed in a variant's unit.

    `whole * conversion_amount + remainder == base_qty` always holds. A non-zero
    remainder means the quantity cannot be shown exactly in this unit.
    """

    base_qty: int
    conversion_amount: int
    whole: int
    remainder: int

    @property
    def is_exact(self) -> bool:
        return self.remainder == 0

    @property
    def value(self) -> Decimal:
        return Decimal(self.base_qty) / Decimal(self.conversion_amount)


def _checked_amount(variant: HasConversionAmount) -> int:
    amount = variant.conversion_amount
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 1:
        raise ValidationError(
            f"Conversion amount must be a positive integer, got {amount!r}",
            code=INVALID_CONVERSION_AMOUNT,
        )
    return amount


def to_base_units(qty: int, variant: HasConversionAmount) -> int:
    return qty * _checked_amount(variant)


def to_line_base_units(qty: int, variant: HasConversionAmount) -> int:
    """Base units of one transaction line, rejecting lines above `max_line_base_qty`."""
    base_qty = to_base_units(qty, variant)
    if abs(base_qty) > settings.max_line_base_qty:
        raise ValidationError(
            f"Line quantity {qty} exceeds {settings.max_line_base_qty} base units",
            code=QTY_OUT_OF_RANGE,
            details=[{"qty": qty, "conversion_amount": variant.conversion_amount, "base_qty": base_qty}],
        )
    return base_qty


def from_base_units(qty: int, variant: HasConversionAmount) -> DisplayQuantity:
    amount = _checked_amount(variant)
    # Truncates toward zero: -700 base units at 40 per unit is -17 whole, -20 remainder.
    whole = abs(qty) // amount
    remainder = abs(qty) % amount
    if qty < 0:
        whole, remainder = -whole, -remainder
    return DisplayQuantity(base_qty=qty, conversion_amount=amount, whole=whole, remainder=remainder)

from typing import Any


class DomainError(Exception):
    """Business-rule failure raised by services and rendered by the API error envelope."""

    status_code = 400
    default_code = "domain_error"

    def __init__(self, message: str, *, code: str | None = None, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details


class ValidationError(DomainError):
    status_code = 400
    default_code = "bad_request"


class ConflictError(DomainError):
    status_code = 409
    default_code = "conflict"


class ConsistencyFailure(DomainError):
    status_code = 409
    default_code = "consistency_failure"


# Reason codes surfaced as `error.code`.
SAME_BRANCH = "same_branch"
BRANCH_NOT_FOUND = "branch_not_found"
ITEM_NOT_FOUND = "item_not_found"
INACTIVE_ITEM = "inactive_item"
VARIANT_NOT_IN_ITEM = "variant_not_in_item"
UNKNOWN_UNIT = "unknown_unit"
EMPTY_LINES = "empty_lines"
NON_POSITIVE_QTY = "non_positive_qty"
INVALID_CONVERSION_AMOUNT = "invalid_conversion_amount"
QTY_OUT_OF_RANGE = "qty_out_of_range"
ZERO_QTY = "zero_qty"

DUPLICATE_BASE_UNIT = "duplicate_base_unit"
DUPLICATE_VARIANT_CODE = "duplicate_variant_code"
DUPLICATE_LINE = "duplicate_line"
VARIANT_IN_USE = "variant_in_use"
LAST_VARIANT = "last_variant"
ALREADY_VOIDED = "already_voided"
DUPLICATE_ITEM_CODE = "duplicate_item_code"
DUPLICATE_UNIT_CODE = "duplicate_unit_code"
UNIT_IN_USE = "unit_in_use"
DUPLICATE_BRANCH_CODE = "duplicate_branch_code"

from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.errors import (
    DUPLICATE_BASE_UNIT,
    DUPLICATE_ITEM_CODE,
    DUPLICATE_VARIANT_CODE,
    INACTIVE_ITEM,
    ITEM_NOT_FOUND,
    LAST_VARIANT,
    UNKNOWN_UNIT,
    VARIANT_IN_USE,
    VARIANT_NOT_IN_ITEM,
    ConflictError,
    ValidationError,
)
from stockroom.core.id_utils import generate_shortuuid
from stockroom.core.money import ZERO_MONEY, money_or_zero, to_money
from stockroom.models.adjustment import ADJUSTMENT_STATUS_VOIDED, StockAdjustment
from stockroom.models.catalog import Item, ItemVariant
from stockroom.models.front_stock import FRONT_STOCK_STATUS_VOIDED, FrontStockTransfer, FrontStockTransferLine
from stockroom.models.transfer import TRANSFER_STATUS_VOIDED, Transfer, TransferLine
from stockroom.schemas.catalog import ItemCreateIn, ItemUpdateIn, VariantCreateIn, VariantUpdateIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.unit_service import get_active_unit_by_code

PERCENT_QUANT = Decimal("0.01")


def compute_recorded_profit(
    *,
    buy_price: Decimal | None,
    conversion_amount: int,
    sell_price: Decimal | None,
) -> tuple[Decimal, Decimal]:
    """Returns (profit amount, profit percentage) of one variant against the item's buy price."""
    variant_buy_price = to_money(money_or_zero(buy_price) * conversion_amount)
    profit_amount = to_money(money_or_zero(sell_price) - variant_buy_price)
    if variant_buy_price <= 0:
        return profit_amount, ZERO_MONEY
    percentage = (profit_amount / variant_buy_price * 100).quantize(PERCENT_QUANT)
    return profit_amount, percentage


def _refresh_profit(item: Item, variant: ItemVariant) -> None:
    variant.recorded_profit_amount, variant.recorded_profit_percentage = compute_recorded_profit(
        buy_price=item.recorded_buy_price,
        conversion_amount=variant.conversion_amount,
        sell_price=variant.sell_price,
    )


def active_variants(db: Session, item_id: str) -> list[ItemVariant]:
    return list(
        db.execute(
            select(ItemVariant)
            .where(ItemVariant.item_id == item_id, ItemVariant.deleted_at.is_(None))
            .order_by(ItemVariant.conversion_amount.asc(), ItemVariant.created_at.asc())
        ).scalars()
    )


def active_variants_by_item(db: Session, item_ids: list[str]) -> dict[str, list[ItemVariant]]:
    grouped: dict[str, list[ItemVariant]] = {item_id: [] for item_id in item_ids}
    if not item_ids:
        return grouped
    rows = db.execute(
        select(ItemVariant)
        .where(ItemVariant.item_id.in_(item_ids), ItemVariant.deleted_at.is_(None))
        .order_by(ItemVariant.conversion_amount.asc(), ItemVariant.created_at.asc())
    ).scalars()
    for variant in rows:
        grouped[variant.item_id].append(variant)
    return grouped


def get_variant_of_item(db: Session, *, item_id: str, variant_id: str) -> ItemVariant:
    variant = db.execute(
        select(ItemVariant).where(
            ItemVariant.id == variant_id,
            ItemVariant.item_id == item_id,
            ItemVariant.deleted_at.is_(None),
        )
    ).scalar_one_or_none()
    if variant is None:
        raise ValidationError(
            f"Variant {variant_id} does not belong to item {item_id}",
            code=VARIANT_NOT_IN_ITEM,
            details=[{"item_id": item_id, "variant_id": variant_id}],
        )
    return variant


def resolve_line_variant(db: Session, *, item_id: str, variant_id: str) -> tuple[Item, ItemVariant]:
    """Resolves a transaction line's item and variant, rejecting deleted items."""
    item = db.get(Item, item_id)
    if item is None:
        raise ValidationError(f"Item {item_id} not found", code=ITEM_NOT_FOUND)
    if item.deleted_at is not None:
        raise ValidationError(f"Item {item.code} has been deleted", code=INACTIVE_ITEM)
    return item, get_variant_of_item(db, item_id=item.id, variant_id=variant_id)


def _require_unit(db: Session, unit_code: str) -> str:
    unit = get_active_unit_by_code(db, unit_code)
    if unit is None:
        raise ValidationError(f"Unknown unit {unit_code}", code=UNKNOWN_UNIT)
    return unit.code


def _check_base_unit_free(others: list[ItemVariant], item: Item) -> None:
    if any(other.is_base_unit for other in others):
        raise ConflictError(
            f"Item {item.code} already has a base-unit variant",
            code=DUPLICATE_BASE_UNIT,
        )


def _check_code_free(others: list[ItemVariant], code: str, item: Item) -> None:
    lowered = code.lower()
    if any(other.code.lower() == lowered for other in others):
        raise ConflictError(
            f"Variant code {code} already exists on item {item.code}",
            code=DUPLICATE_VARIANT_CODE,
        )


def _validate_variant_drafts(db: Session, drafts: list[VariantCreateIn]) -> None:
    if sum(1 for draft in drafts if draft.conversion_amount == 1) > 1:
        raise ConflictError("Only one variant may have conversion amount 1", code=DUPLICATE_BASE_UNIT)
    code_counts = Counter(draft.code.lower() for draft in drafts)
    duplicated = sorted(code for code, count in code_counts.items() if count > 1)
    if duplicated:
        raise ConflictError(
            f"Duplicate variant codes: {', '.join(duplicated)}",
            code=DUPLICATE_VARIANT_CODE,
        )
    for draft in drafts:
        _require_unit(db, draft.unit)


def _new_variant(item: Item, draft: VariantCreateIn) -> ItemVariant:
    variant = ItemVariant(
        id=generate_shortuuid(),
        item_id=item.id,
        code=draft.code,
        unit_code=draft.unit,
        conversion_amount=draft.conversion_amount,
        sell_price=to_money(draft.sell_price),
    )
    _refresh_profit(item, variant)
    return variant


def _ensure_item_code_free(db: Session, code: str) -> None:
    exists = db.execute(
        select(Item.id).where(func.lower(Item.code) == code.lower(), Item.deleted_at.is_(None))
    ).first()
    if exists:
        raise ConflictError(f"Item code {code} already exists", code=DUPLICATE_ITEM_CODE)


def create_item(db: Session, payload: ItemCreateIn, *, actor_id: str) -> Item:
    _ensure_item_code_free(db, payload.code)
    _validate_variant_drafts(db, payload.variants)

    item = Item(
        id=generate_shortuuid(),
        name=payload.name,
        code=payload.code,
        category_id=payload.category_id,
        supplier_id=payload.supplier_id,
        is_active=payload.is_active,
        recorded_buy_price=to_money(payload.recorded_buy_price),
    )
    db.add(item)
    variants = [_new_variant(item, draft) for draft in payload.variants]
    db.add_all(variants)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.create",
        target_type="item",
        target_id=item.id,
        metadata_json={
            "code": item.code,
            "name": item.name,
            "variants": [
                {"code": v.code, "unit": v.unit_code, "conversion_amount": v.conversion_amount}
                for v in variants
            ],
        },
    )
    db.flush()
    return item


def update_item(db: Session, item: Item, payload: ItemUpdateIn, *, actor_id: str) -> Item:
    fields = payload.model_fields_set
    changes: dict[str, object] = {}
    if "name" in fields and payload.name is not None:
        item.name = payload.name
        changes["name"] = payload.name
    if "category_id" in fields:
        item.category_id = payload.category_id
        changes["category_id"] = payload.category_id
    if "supplier_id" in fields:
        item.supplier_id = payload.supplier_id
        changes["supplier_id"] = payload.supplier_id
    if "is_active" in fields and payload.is_active is not None:
        item.is_active = payload.is_active
        changes["is_active"] = payload.is_active
    if "recorded_buy_price" in fields and payload.recorded_buy_price is not None:
        item.recorded_buy_price = to_money(payload.recorded_buy_price)
        changes["recorded_buy_price"] = float(item.recorded_buy_price)
        for variant in active_variants(db, item.id):
            _refresh_profit(item, variant)

    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.update",
        target_type="item",
        target_id=item.id,
        metadata_json=changes,
    )
    db.flush()
    return item


def delete_item(db: Session, item: Item, *, actor_id: str) -> None:
    item.deleted_at = datetime.now(timezone.utc)
    item.is_active = False
    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.delete",
        target_type="item",
        target_id=item.id,
        metadata_json={"code": item.code},
    )
    db.flush()


def add_variant(db: Session, item: Item, draft: VariantCreateIn, *, actor_id: str) -> ItemVariant:
    others = active_variants(db, item.id)
    if draft.conversion_amount == 1:
        _check_base_unit_free(others, item)
    _check_code_free(others, draft.code, item)
    _require_unit(db, draft.unit)

    variant = _new_variant(item, draft)
    db.add(variant)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.variant.create",
        target_type="item_variant",
        target_id=variant.id,
        metadata_json={
            "item_id": item.id,
            "code": variant.code,
            "unit": variant.unit_code,
            "conversion_amount": variant.conversion_amount,
        },
    )
    db.flush()
    return variant


def update_variant(
    db: Session,
    item: Item,
    variant_id: str,
    patch: VariantUpdateIn,
    *,
    actor_id: str,
) -> ItemVariant:
    variant = get_variant_of_item(db, item_id=item.id, variant_id=variant_id)
    others = [other for other in active_variants(db, item.id) if other.id != variant.id]

    changes: dict[str, object] = {}
    if patch.conversion_amount is not None and patch.conversion_amount != variant.conversion_amount:
        if patch.conversion_amount == 1:
            _check_base_unit_free(others, item)
        changes["conversion_amount"] = patch.conversion_amount
    if patch.code is not None and patch.code != variant.code:
        _check_code_free(others, patch.code, item)
        changes["code"] = patch.code
    if patch.unit is not None and patch.unit != variant.unit_code:
        changes["unit_code"] = _require_unit(db, patch.unit)
    if patch.sell_price is not None:
        changes["sell_price"] = to_money(patch.sell_price)

    for name, value in changes.items():
        setattr(variant, name, value)
    _refresh_profit(item, variant)

    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.variant.update",
        target_type="item_variant",
        target_id=variant.id,
        metadata_json={
            "item_id": item.id,
            **{k: float(v) if isinstance(v, Decimal) else v for k, v in changes.items()},
        },
    )
    db.flush()
    return variant


def variant_in_use(db: Session, variant_id: str) -> bool:
    transfer_ref = db.execute(
        select(TransferLine.id)
        .join(Transfer, Transfer.id == TransferLine.transfer_id)
        .where(TransferLine.variant_id == variant_id, Transfer.status != TRANSFER_STATUS_VOIDED)
        .limit(1)
    ).first()
    if transfer_ref is not None:
        return True
    adjustment_ref = db.execute(
        select(StockAdjustment.id)
        .where(StockAdjustment.variant_id == variant_id, StockAdjustment.status != ADJUSTMENT_STATUS_VOIDED)
        .limit(1)
    ).first()
    if adjustment_ref is not None:
        return True
    front_stock_ref = db.execute(
        select(FrontStockTransferLine.id)
        .join(FrontStockTransfer, FrontStockTransfer.id == FrontStockTransferLine.transfer_id)
        .where(
            FrontStockTransferLine.variant_id == variant_id,
            FrontStockTransfer.status != FRONT_STOCK_STATUS_VOIDED,
        )
        .limit(1)
    ).first()
    return front_stock_ref is not None


def remove_variant(db: Session, item: Item, variant_id: str, *, actor_id: str) -> None:
    variant = get_variant_of_item(db, item_id=item.id, variant_id=variant_id)
    if variant_in_use(db, variant.id):
        raise ConflictError(
            f"Variant {variant.code} is referenced by committed transactions",
            code=VARIANT_IN_USE,
        )
    if len(active_variants(db, item.id)) <= 1:
        raise ConflictError(f"Item {item.code} must keep at least one variant", code=LAST_VARIANT)

    variant.deleted_at = datetime.now(timezone.utc)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.variant.delete",
        target_type="item_variant",
        target_id=variant.id,
        metadata_json={"item_id": item.id, "code": variant.code},
    )
    db.flush()


def bulk_update_variant_price(
    db: Session,
    *,
    variant_ids: list[str],
    sell_price: Decimal,
    actor_id: str,
) -> int:
    unique_ids = list(dict.fromkeys(variant_ids))
    rows = db.execute(
        select(ItemVariant, Item)
        .join(Item, Item.id == ItemVariant.item_id)
        .where(ItemVariant.id.in_(unique_ids), ItemVariant.deleted_at.is_(None))
    ).all()
    found = {variant.id for variant, _ in rows}
    missing = [variant_id for variant_id in unique_ids if variant_id not in found]
    if missing:
        raise ValidationError(
            "Some variants were not found",
            code=VARIANT_NOT_IN_ITEM,
            details=[{"variant_id": variant_id} for variant_id in missing],
        )

    price = to_money(sell_price)
    for variant, item in rows:
        variant.sell_price = price
        _refresh_profit(item, variant)

    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.variant.bulk_price",
        target_type="item_variant",
        metadata_json={"variant_ids": unique_ids, "sell_price": float(price)},
    )
    db.flush()
    return len(rows)

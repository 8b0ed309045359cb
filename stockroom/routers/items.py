from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.catalog import Item, ItemVariant
from stockroom.schemas.catalog import (
    BulkVariantPriceIn,
    BulkVariantPriceOut,
    ItemCreateIn,
    ItemListOut,
    ItemOut,
    ItemUpdateIn,
    VariantCreateIn,
    VariantOut,
    VariantUpdateIn,
)
from stockroom.schemas.common import PaginationMeta
from stockroom.services.catalog_service import (
    active_variants,
    active_variants_by_item,
    add_variant,
    bulk_update_variant_price,
    create_item,
    delete_item,
    remove_variant,
    update_item,
    update_variant,
)
from stockroom.services.stock_ledger_service import get_quantities, get_quantity

router = APIRouter(prefix="/items", tags=["items"])


def _item_or_404(db: Session, item_id: str) -> Item:
    item = db.execute(
        select(Item).where(Item.id == item_id, Item.deleted_at.is_(None))
    ).scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


def _variant_out(variant: ItemVariant) -> VariantOut:
    return VariantOut(
        id=variant.id,
        item_id=variant.item_id,
        code=variant.code,
        unit=variant.unit_code,
        conversion_amount=variant.conversion_amount,
        is_base_unit=variant.is_base_unit,
        sell_price=float(variant.sell_price),
        recorded_profit_amount=float(variant.recorded_profit_amount),
        recorded_profit_percentage=float(variant.recorded_profit_percentage),
        created_at=variant.created_at,
        updated_at=variant.updated_at,
    )


def _item_out(item: Item, variants: list[ItemVariant], stock: int | None = None) -> ItemOut:
    return ItemOut(
        id=item.id,
        name=item.name,
        code=item.code,
        category_id=item.category_id,
        supplier_id=item.supplier_id,
        is_active=item.is_active,
        recorded_buy_price=float(item.recorded_buy_price),
        stock=stock,
        variants=[_variant_out(v) for v in variants],
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def _item_detail(db: Session, item: Item, branch_id: str | None) -> ItemOut:
    stock = get_quantity(db, branch_id=branch_id, item_id=item.id) if branch_id else None
    return _item_out(item, active_variants(db, item.id), stock)


@router.post(
    "",
    response_model=ItemOut,
    summary="Create item with variants",
    description="Exactly one variant may use conversion amount 1 (the base unit).",
    responses=error_responses(
        400,
        409,
        422,
        500,
        reasons={400: ["unknown_unit"], 409: ["duplicate_item_code", "duplicate_base_unit", "duplicate_variant_code"]},
    ),
)
def create_item_endpoint(
    payload: ItemCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = create_item(db, payload, actor_id=actor_id)
    db.commit()
    db.refresh(item)
    return _item_detail(db, item, None)


@router.get(
    "",
    response_model=ItemListOut,
    summary="List items",
    responses=error_responses(422, 500),
)
def list_items(
    q: str | None = Query(default=None, min_length=1, max_length=100, description="Matches name or code"),
    is_active: bool | None = Query(default=None),
    category_id: str | None = Query(default=None),
    supplier_id: str | None = Query(default=None),
    branch_id: str | None = Query(default=None, description="Embed this branch's base-unit stock"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    filters = [Item.deleted_at.is_(None)]
    if q:
        pattern = f"%{q.strip().lower()}%"
        filters.append(or_(func.lower(Item.name).like(pattern), func.lower(Item.code).like(pattern)))
    if is_active is not None:
        filters.append(Item.is_active.is_(is_active))
    if category_id:
        filters.append(Item.category_id == category_id)
    if supplier_id:
        filters.append(Item.supplier_id == supplier_id)

    total = int(db.execute(select(func.count(Item.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Item).where(*filters).order_by(Item.name.asc(), Item.id.asc()).offset(offset).limit(limit)
    ).scalars().all()

    item_ids = [row.id for row in rows]
    variants = active_variants_by_item(db, item_ids)
    stock = get_quantities(db, branch_id=branch_id, item_ids=item_ids) if branch_id else {}
    items = [
        _item_out(row, variants[row.id], stock.get(row.id, 0) if branch_id else None)
        for row in rows
    ]
    count = len(items)
    return ItemListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.patch(
    "/variants/bulk-price",
    response_model=BulkVariantPriceOut,
    summary="Set sell price on many variants",
    responses=error_responses(400, 422, 500),
)
def bulk_price_endpoint(
    payload: BulkVariantPriceIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    updated = bulk_update_variant_price(
        db,
        variant_ids=payload.variant_ids,
        sell_price=payload.sell_price,
        actor_id=actor_id,
    )
    db.commit()
    return BulkVariantPriceOut(updated=updated)


@router.get(
    "/code/{code}",
    response_model=ItemOut,
    summary="Get item by code",
    responses=error_responses(404, 422, 500),
)
def get_item_by_code(
    code: str,
    branch_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    item = db.execute(
        select(Item).where(func.lower(Item.code) == code.strip().lower(), Item.deleted_at.is_(None))
    ).scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return _item_detail(db, item, branch_id)


@router.get(
    "/{item_id}",
    response_model=ItemOut,
    summary="Get item",
    responses=error_responses(404, 422, 500),
)
def get_item(
    item_id: str,
    branch_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return _item_detail(db, _item_or_404(db, item_id), branch_id)


@router.patch(
    "/{item_id}",
    response_model=ItemOut,
    summary="Update item",
    description="Changing the buy price recomputes the recorded profit of every variant.",
    responses=error_responses(404, 422, 500),
)
def update_item_endpoint(
    item_id: str,
    payload: ItemUpdateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = update_item(db, _item_or_404(db, item_id), payload, actor_id=actor_id)
    db.commit()
    db.refresh(item)
    return _item_detail(db, item, None)


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete item",
    description="Soft delete. Historical transfers and adjustments keep referencing the item.",
    responses=error_responses(404, 422, 500),
)
def delete_item_endpoint(
    item_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    delete_item(db, _item_or_404(db, item_id), actor_id=actor_id)
    db.commit()
    return None


@router.post(
    "/{item_id}/variants",
    response_model=VariantOut,
    summary="Add variant",
    responses=error_responses(400, 404, 409, 422, 500),
)
def add_variant_endpoint(
    item_id: str,
    payload: VariantCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    variant = add_variant(db, _item_or_404(db, item_id), payload, actor_id=actor_id)
    db.commit()
    db.refresh(variant)
    return _variant_out(variant)


@router.patch(
    "/{item_id}/variants/{variant_id}",
    response_model=VariantOut,
    summary="Update variant",
    responses=error_responses(400, 404, 409, 422, 500),
)
def update_variant_endpoint(
    item_id: str,
    variant_id: str,
    payload: VariantUpdateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    variant = update_variant(db, _item_or_404(db, item_id), variant_id, payload, actor_id=actor_id)
    db.commit()
    db.refresh(variant)
    return _variant_out(variant)


@router.delete(
    "/{item_id}/variants/{variant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove variant",
    description="Fails while committed transactions reference the variant or when it is the last one.",
    responses=error_responses(400, 404, 409, 422, 500),
)
def remove_variant_endpoint(
    item_id: str,
    variant_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    remove_variant(db, _item_or_404(db, item_id), variant_id, actor_id=actor_id)
    db.commit()
    return None

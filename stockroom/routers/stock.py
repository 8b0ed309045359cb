from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_db
from stockroom.models.branch import Branch
from stockroom.models.catalog import Item, ItemVariant
from stockroom.models.stock import StockMovement
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockLevelOut, StockMovementListOut, StockMovementOut, VariantDisplayQtyOut
from stockroom.services.catalog_service import active_variants
from stockroom.services.conversion import from_base_units
from stockroom.services.stock_ledger_service import get_front_split, get_quantity

router = APIRouter(prefix="/stock", tags=["stock"])


def display_quantities(quantity: int, variants: list[ItemVariant]) -> list[VariantDisplayQtyOut]:
    out = []
    for variant in variants:
        display = from_base_units(quantity, variant)
        out.append(
            VariantDisplayQtyOut(
                variant_id=variant.id,
                code=variant.code,
                unit=variant.unit_code,
                conversion_amount=display.conversion_amount,
                quantity=float(display.value),
                whole=display.whole,
                remainder=display.remainder,
                is_exact=display.is_exact,
            )
        )
    return out


def _branch_and_item_or_404(db: Session, branch_id: str, item_id: str) -> tuple[Branch, Item]:
    branch = db.get(Branch, branch_id)
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    item = db.get(Item, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return branch, item


@router.get(
    "/{branch_id}/items/{item_id}",
    response_model=StockLevelOut,
    summary="Get branch stock for an item",
    description=(
        "Returns the ledger quantity in base units, its front (shop floor) and rear (warehouse) split, "
        "and the total expressed in every active variant. `is_exact` is false when the base "
        "quantity is not a whole multiple of the variant's conversion amount."
    ),
    responses=error_responses(404, 422, 500),
)
def get_stock_level(branch_id: str, item_id: str, db: Session = Depends(get_db)):
    branch, item = _branch_and_item_or_404(db, branch_id, item_id)
    quantity = get_quantity(db, branch_id=branch.id, item_id=item.id)
    front, rear = get_front_split(db, branch_id=branch.id, item_ids=[item.id]).get(item.id, (0, 0))

    variants = display_quantities(quantity, active_variants(db, item.id))
    return StockLevelOut(
        branch_id=branch.id,
        item_id=item.id,
        quantity=quantity,
        front_quantity=front,
        rear_quantity=rear,
        is_negative=quantity < 0,
        variants=variants,
    )


@router.get(
    "/{branch_id}/items/{item_id}/movements",
    response_model=StockMovementListOut,
    summary="List stock movements for an item at a branch",
    responses=error_responses(404, 422, 500),
)
def list_stock_movements(
    branch_id: str,
    item_id: str,
    reason: str | None = Query(default=None, max_length=40),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    branch, item = _branch_and_item_or_404(db, branch_id, item_id)
    filters = [StockMovement.branch_id == branch.id, StockMovement.item_id == item.id]
    if reason:
        filters.append(StockMovement.reason == reason)

    total = int(db.execute(select(func.count(StockMovement.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(StockMovement)
        .where(*filters)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [
        StockMovementOut(
            id=row.id,
            branch_id=row.branch_id,
            item_id=row.item_id,
            variant_id=row.variant_id,
            qty_delta=row.qty_delta,
            front_qty_delta=row.front_qty_delta,
            reason=row.reason,
            reference_id=row.reference_id,
            note=row.note,
            created_at=row.created_at,
        )
        for row in rows
    ]
    count = len(items)
    return StockMovementListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )

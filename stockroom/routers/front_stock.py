from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.branch import Branch
from stockroom.models.catalog import Item
from stockroom.models.front_stock import FRONT_STOCK_STATUS_COMMITTED, FRONT_STOCK_STATUS_VOIDED, FrontStockTransfer
from stockroom.routers.stock import display_quantities
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.front_stock import (
    FrontStockItemListOut,
    FrontStockItemOut,
    FrontStockLineOut,
    FrontStockTransferCreateIn,
    FrontStockTransferListOut,
    FrontStockTransferOut,
)
from stockroom.schemas.stock import StockAlertOut
from stockroom.services.catalog_service import active_variants_by_item
from stockroom.services.front_stock_service import create_front_stock_transfer, void_front_stock_transfer
from stockroom.services.stock_ledger_service import StockAlert, get_front_split, run_submission

router = APIRouter(prefix="/stock/front-stock", tags=["front-stock"])


def _front_transfer_or_404(db: Session, transfer_id: str) -> FrontStockTransfer:
    transfer = db.get(FrontStockTransfer, transfer_id)
    if not transfer:
        raise HTTPException(status_code=404, detail="Front-stock transfer not found")
    return transfer


def _front_transfer_out(transfer: FrontStockTransfer, alerts: list[StockAlert] | None = None) -> FrontStockTransferOut:
    return FrontStockTransferOut(
        id=transfer.id,
        transaction_date=transfer.transaction_date,
        branch_id=transfer.branch_id,
        status=transfer.status,
        notes=transfer.notes,
        created_by=transfer.created_by,
        voided_by=transfer.voided_by,
        voided_at=transfer.voided_at,
        created_at=transfer.created_at,
        items=[
            FrontStockLineOut(
                id=line.id,
                item_id=line.item_id,
                variant_id=line.variant_id,
                qty=line.qty,
                conversion_amount=line.conversion_amount,
                base_qty=line.base_qty,
            )
            for line in transfer.lines
        ],
        alerts=[
            StockAlertOut(
                branch_id=alert.branch_id,
                item_id=alert.item_id,
                quantity=alert.quantity,
                message=alert.message,
                bucket=alert.bucket,
            )
            for alert in alerts or []
        ],
    )


@router.get(
    "/items",
    response_model=FrontStockItemListOut,
    summary="List items with front and rear stock",
    description="Front is the shop-floor portion of the branch stock; rear is the remainder held in the warehouse.",
    responses=error_responses(404, 422, 500),
)
def list_front_stock_items(
    branch_id: str = Query(min_length=1, max_length=36),
    q: str | None = Query(default=None, min_length=1, max_length=100, description="Matches name or code"),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    if not db.get(Branch, branch_id):
        raise HTTPException(status_code=404, detail="Branch not found")

    filters = [Item.deleted_at.is_(None)]
    if q:
        pattern = f"%{q.strip().lower()}%"
        filters.append(or_(func.lower(Item.name).like(pattern), func.lower(Item.code).like(pattern)))

    total = int(db.execute(select(func.count(Item.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Item).where(*filters).order_by(Item.name.asc(), Item.id.asc()).offset(offset).limit(limit)
    ).scalars().all()

    item_ids = [row.id for row in rows]
    variants = active_variants_by_item(db, item_ids)
    splits = get_front_split(db, branch_id=branch_id, item_ids=item_ids)
    items = []
    for row in rows:
        front, rear = splits.get(row.id, (0, 0))
        items.append(
            FrontStockItemOut(
                item_id=row.id,
                code=row.code,
                name=row.name,
                quantity=front + rear,
                front_quantity=front,
                rear_quantity=rear,
                front_variants=display_quantities(front, variants[row.id]),
            )
        )
    count = len(items)
    return FrontStockItemListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.post(
    "/transfers",
    response_model=FrontStockTransferOut,
    summary="Move stock between rear and front",
    description=(
        "Positive line quantities move stock from the rear to the front of the branch, negative ones "
        "move it back. The branch total is unchanged. A negative side is reported in `alerts`."
    ),
    responses=error_responses(
        400,
        409,
        422,
        500,
        reasons={
            400: [
                "branch_not_found",
                "empty_lines",
                "zero_qty",
                "qty_out_of_range",
                "item_not_found",
                "inactive_item",
                "variant_not_in_item",
            ],
            409: ["duplicate_line", "consistency_failure"],
        },
    ),
)
def create_front_stock_transfer_endpoint(
    payload: FrontStockTransferCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    result = run_submission(db, lambda: create_front_stock_transfer(db, payload, actor_id=actor_id))
    return _front_transfer_out(result.transfer, result.alerts)


@router.get(
    "/transfers",
    response_model=FrontStockTransferListOut,
    summary="List front-stock transfers",
    responses=error_responses(422, 500),
)
def list_front_stock_transfers(
    branch_id: str | None = Query(default=None),
    status: str | None = Query(
        default=None,
        pattern=f"^({FRONT_STOCK_STATUS_COMMITTED}|{FRONT_STOCK_STATUS_VOIDED})$",
    ),
    date_start: datetime | None = Query(default=None),
    date_end: datetime | None = Query(default=None),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    filters = []
    if branch_id:
        filters.append(FrontStockTransfer.branch_id == branch_id)
    if status:
        filters.append(FrontStockTransfer.status == status)
    if date_start:
        filters.append(FrontStockTransfer.transaction_date >= date_start)
    if date_end:
        filters.append(FrontStockTransfer.transaction_date <= date_end)

    total = int(db.execute(select(func.count(FrontStockTransfer.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(FrontStockTransfer)
        .where(*filters)
        .order_by(FrontStockTransfer.transaction_date.desc(), FrontStockTransfer.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_front_transfer_out(row) for row in rows]
    count = len(items)
    return FrontStockTransferListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/transfers/{transfer_id}",
    response_model=FrontStockTransferOut,
    summary="Get front-stock transfer",
    responses=error_responses(404, 422, 500),
)
def get_front_stock_transfer(transfer_id: str, db: Session = Depends(get_db)):
    return _front_transfer_out(_front_transfer_or_404(db, transfer_id))


@router.post(
    "/transfers/{transfer_id}/void",
    response_model=FrontStockTransferOut,
    summary="Void front-stock transfer",
    description="Moves every line back to the side it came from and marks the transfer voided.",
    responses=error_responses(404, 409, 422, 500, reasons={409: ["already_voided", "consistency_failure"]}),
)
def void_front_stock_transfer_endpoint(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    transfer = _front_transfer_or_404(db, transfer_id)
    result = run_submission(db, lambda: void_front_stock_transfer(db, transfer, actor_id=actor_id))
    return _front_transfer_out(result.transfer, result.alerts)

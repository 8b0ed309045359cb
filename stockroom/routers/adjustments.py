from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.adjustment import ADJUSTMENT_STATUS_COMMITTED, ADJUSTMENT_STATUS_VOIDED, StockAdjustment
from stockroom.schemas.adjustment import AdjustmentCreateIn, AdjustmentCreateOut, AdjustmentListOut, AdjustmentOut
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockAlertOut
from stockroom.services.adjustment_service import create_adjustments, gap_direction, void_adjustment
from stockroom.services.stock_ledger_service import StockAlert, run_submission

router = APIRouter(prefix="/transactions/adjustments", tags=["adjustments"])


def _adjustment_or_404(db: Session, adjustment_id: str) -> StockAdjustment:
    adjustment = db.get(StockAdjustment, adjustment_id)
    if not adjustment:
        raise HTTPException(status_code=404, detail="Adjustment not found")
    return adjustment


def _adjustment_out(adjustment: StockAdjustment) -> AdjustmentOut:
    return AdjustmentOut(
        id=adjustment.id,
        submission_id=adjustment.submission_id,
        transaction_date=adjustment.transaction_date,
        branch_id=adjustment.branch_id,
        item_id=adjustment.item_id,
        variant_id=adjustment.variant_id,
        actual_qty=adjustment.actual_qty,
        conversion_amount=adjustment.conversion_amount,
        before_amount=adjustment.before_amount,
        final_amount=adjustment.final_amount,
        final_total_amount=adjustment.final_total_amount,
        total_gap_amount=adjustment.total_gap_amount,
        gap_direction=gap_direction(adjustment.total_gap_amount),
        notes=adjustment.notes,
        status=adjustment.status,
        created_by=adjustment.created_by,
        voided_by=adjustment.voided_by,
        voided_at=adjustment.voided_at,
        created_at=adjustment.created_at,
    )


def _alerts_out(alerts: list[StockAlert]) -> list[StockAlertOut]:
    return [
        StockAlertOut(branch_id=a.branch_id, item_id=a.item_id, quantity=a.quantity, message=a.message)
        for a in alerts
    ]


@router.post(
    "",
    response_model=AdjustmentCreateOut,
    summary="Record stock-take adjustment",
    description=(
        "Sets each counted item's ledger to the physical count. One record per line keeps the "
        "before, final and gap amounts in base units."
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
                "qty_out_of_range",
                "item_not_found",
                "inactive_item",
                "variant_not_in_item",
            ],
            409: ["duplicate_line", "consistency_failure"],
        },
    ),
)
def create_adjustment_endpoint(
    payload: AdjustmentCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    result = run_submission(db, lambda: create_adjustments(db, payload, actor_id=actor_id))
    return AdjustmentCreateOut(
        items=[_adjustment_out(row) for row in result.adjustments],
        skipped_zero_gap=result.skipped_zero_gap,
        alerts=_alerts_out(result.alerts),
    )


@router.get(
    "",
    response_model=AdjustmentListOut,
    summary="List adjustments",
    responses=error_responses(422, 500),
)
def list_adjustments(
    branch_id: str | None = Query(default=None),
    item_id: str | None = Query(default=None),
    submission_id: str | None = Query(default=None),
    status: str | None = Query(default=None, pattern=f"^({ADJUSTMENT_STATUS_COMMITTED}|{ADJUSTMENT_STATUS_VOIDED})$"),
    date_start: datetime | None = Query(default=None),
    date_end: datetime | None = Query(default=None),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    filters = []
    if branch_id:
        filters.append(StockAdjustment.branch_id == branch_id)
    if item_id:
        filters.append(StockAdjustment.item_id == item_id)
    if submission_id:
        filters.append(StockAdjustment.submission_id == submission_id)
    if status:
        filters.append(StockAdjustment.status == status)
    if date_start:
        filters.append(StockAdjustment.transaction_date >= date_start)
    if date_end:
        filters.append(StockAdjustment.transaction_date <= date_end)

    total = int(db.execute(select(func.count(StockAdjustment.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(StockAdjustment)
        .where(*filters)
        .order_by(StockAdjustment.transaction_date.desc(), StockAdjustment.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_adjustment_out(row) for row in rows]
    count = len(items)
    return AdjustmentListOut(
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
    "/{adjustment_id}",
    response_model=AdjustmentOut,
    summary="Get adjustment",
    responses=error_responses(404, 422, 500),
)
def get_adjustment(adjustment_id: str, db: Session = Depends(get_db)):
    return _adjustment_out(_adjustment_or_404(db, adjustment_id))


@router.post(
    "/{adjustment_id}/void",
    response_model=AdjustmentCreateOut,
    summary="Void adjustment",
    description="Applies the negated gap to the ledger and marks the record voided.",
    responses=error_responses(404, 409, 422, 500),
)
def void_adjustment_endpoint(
    adjustment_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    adjustment = _adjustment_or_404(db, adjustment_id)
    result = run_submission(db, lambda: void_adjustment(db, adjustment, actor_id=actor_id))
    return AdjustmentCreateOut(
        items=[_adjustment_out(row) for row in result.adjustments],
        alerts=_alerts_out(result.alerts),
    )

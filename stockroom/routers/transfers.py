from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.transfer import TRANSFER_STATUS_COMMITTED, TRANSFER_STATUS_VOIDED, Transfer
from stockroom.schemas.common import PaginationMeta
from stockroom.schemas.stock import StockAlertOut
from stockroom.schemas.transfer import TransferCreateIn, TransferLineOut, TransferListOut, TransferOut
from stockroom.services.stock_ledger_service import StockAlert, run_submission
from stockroom.services.transfer_service import create_transfer, void_transfer

router = APIRouter(prefix="/transactions/transfers", tags=["transfers"])


def _transfer_or_404(db: Session, transfer_id: str) -> Transfer:
    transfer = db.get(Transfer, transfer_id)
    if not transfer:
        raise HTTPException(status_code=404, detail="Transfer not found")
    return transfer


def _transfer_out(transfer: Transfer, alerts: list[StockAlert] | None = None) -> TransferOut:
    return TransferOut(
        id=transfer.id,
        transaction_date=transfer.transaction_date,
        from_branch_id=transfer.from_branch_id,
        to_branch_id=transfer.to_branch_id,
        status=transfer.status,
        notes=transfer.notes,
        created_by=transfer.created_by,
        voided_by=transfer.voided_by,
        voided_at=transfer.voided_at,
        created_at=transfer.created_at,
        items=[
            TransferLineOut(
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


@router.post(
    "",
    response_model=TransferOut,
    summary="Create branch-to-branch transfer",
    description=(
        "Moves variant quantities from one branch to another. Quantities are converted to base units. "
        "Negative source stock is allowed and reported in `alerts`."
    ),
    responses=error_responses(
        400,
        409,
        422,
        500,
        reasons={
            400: [
                "same_branch",
                "branch_not_found",
                "empty_lines",
                "non_positive_qty",
                "qty_out_of_range",
                "item_not_found",
                "inactive_item",
                "variant_not_in_item",
            ],
            409: ["duplicate_line", "consistency_failure"],
        },
    ),
)
def create_transfer_endpoint(
    payload: TransferCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    result = run_submission(db, lambda: create_transfer(db, payload, actor_id=actor_id))
    return _transfer_out(result.transfer, result.alerts)


@router.get(
    "",
    response_model=TransferListOut,
    summary="List transfers",
    responses=error_responses(422, 500),
)
def list_transfers(
    branch_id: str | None = Query(default=None, description="Matches either the source or the destination branch"),
    status: str | None = Query(default=None, pattern=f"^({TRANSFER_STATUS_COMMITTED}|{TRANSFER_STATUS_VOIDED})$"),
    date_start: datetime | None = Query(default=None),
    date_end: datetime | None = Query(default=None),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    filters = []
    if branch_id:
        filters.append(or_(Transfer.from_branch_id == branch_id, Transfer.to_branch_id == branch_id))
    if status:
        filters.append(Transfer.status == status)
    if date_start:
        filters.append(Transfer.transaction_date >= date_start)
    if date_end:
        filters.append(Transfer.transaction_date <= date_end)

    total = int(db.execute(select(func.count(Transfer.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Transfer)
        .where(*filters)
        .order_by(Transfer.transaction_date.desc(), Transfer.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    items = [_transfer_out(row) for row in rows]
    count = len(items)
    return TransferListOut(
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
    "/{transfer_id}",
    response_model=TransferOut,
    summary="Get transfer",
    responses=error_responses(404, 422, 500),
)
def get_transfer(transfer_id: str, db: Session = Depends(get_db)):
    return _transfer_out(_transfer_or_404(db, transfer_id))


@router.post(
    "/{transfer_id}/void",
    response_model=TransferOut,
    summary="Void transfer",
    description="Reverses every line on both branches and marks the transfer voided. The record is kept.",
    responses=error_responses(404, 409, 422, 500),
)
def void_transfer_endpoint(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    transfer = _transfer_or_404(db, transfer_id)
    result = run_submission(db, lambda: void_transfer(db, transfer, actor_id=actor_id))
    return _transfer_out(result.transfer, result.alerts)

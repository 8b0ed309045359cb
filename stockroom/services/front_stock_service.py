from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from stockroom.core.errors import (
    ALREADY_VOIDED,
    BRANCH_NOT_FOUND,
    DUPLICATE_LINE,
    EMPTY_LINES,
    ZERO_QTY,
    ConflictError,
    ValidationError,
)
from stockroom.core.id_utils import generate_shortuuid
from stockroom.core.observability import log_inventory_event
from stockroom.models.branch import Branch
from stockroom.models.front_stock import (
    FRONT_STOCK_STATUS_COMMITTED,
    FRONT_STOCK_STATUS_VOIDED,
    FrontStockTransfer,
    FrontStockTransferLine,
)
from stockroom.schemas.front_stock import FrontStockTransferCreateIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.catalog_service import resolve_line_variant
from stockroom.services.conversion import to_line_base_units
from stockroom.services.stock_ledger_service import (
    StockAlert,
    apply_front_delta,
    lock_ledger_rows,
    negative_stock_alert,
)


@dataclass
class FrontStockResult:
    transfer: FrontStockTransfer
    alerts: list[StockAlert] = field(default_factory=list)


def _split_alerts(branch_id: str, splits: dict[str, tuple[int, int]]) -> list[StockAlert]:
    alerts: list[StockAlert] = []
    for item_id, (front, rear) in splits.items():
        for bucket, quantity in (("front", front), ("rear", rear)):
            alert = negative_stock_alert(branch_id=branch_id, item_id=item_id, quantity=quantity, bucket=bucket)
            if alert:
                alerts.append(alert)
    return alerts


def _check_lines(payload: FrontStockTransferCreateIn) -> None:
    if not payload.items:
        raise ValidationError("A front-stock transfer needs at least one line", code=EMPTY_LINES)
    zero = [line.variant_id for line in payload.items if line.qty == 0]
    if zero:
        raise ValidationError(
            "Line quantities must not be zero",
            code=ZERO_QTY,
            details=[{"variant_id": variant_id} for variant_id in zero],
        )
    variant_ids = [line.variant_id for line in payload.items]
    duplicates = sorted({variant_id for variant_id in variant_ids if variant_ids.count(variant_id) > 1})
    if duplicates:
        raise ConflictError(
            "A variant may appear only once per front-stock transfer",
            code=DUPLICATE_LINE,
            details=[{"variant_id": variant_id} for variant_id in duplicates],
        )


def create_front_stock_transfer(
    db: Session,
    payload: FrontStockTransferCreateIn,
    *,
    actor_id: str,
) -> FrontStockResult:
    """Moves stock between the rear and front of one branch.

    Only the front/rear split changes; the branch total and the inter-branch
    ledger history are untouched. Either side may go negative, which is
    reported as an alert like any other negative stock.
    """
    branch = db.get(Branch, payload.branch_id)
    if branch is None or not branch.is_active:
        raise ValidationError(f"Branch {payload.branch_id} not found", code=BRANCH_NOT_FOUND)
    _check_lines(payload)

    resolved = []
    for line in payload.items:
        item, variant = resolve_line_variant(db, item_id=line.item_id, variant_id=line.variant_id)
        resolved.append((line, item, variant, to_line_base_units(line.qty, variant)))
    locked = lock_ledger_rows(db, [(branch.id, item.id) for _, item, _, _ in resolved])

    transfer = FrontStockTransfer(
        id=generate_shortuuid(),
        transaction_date=payload.transaction_date or datetime.now(timezone.utc),
        branch_id=branch.id,
        created_by=actor_id,
        status=FRONT_STOCK_STATUS_COMMITTED,
        notes=payload.notes,
    )
    db.add(transfer)

    splits: dict[str, tuple[int, int]] = {}
    for line_no, (line, item, variant, base_qty) in enumerate(resolved, start=1):
        transfer.lines.append(
            FrontStockTransferLine(
                id=generate_shortuuid(),
                line_no=line_no,
                item_id=item.id,
                variant_id=variant.id,
                qty=line.qty,
                conversion_amount=variant.conversion_amount,
                base_qty=base_qty,
            )
        )
        splits[item.id] = apply_front_delta(
            db,
            branch_id=branch.id,
            item_id=item.id,
            front_delta=base_qty,
            reason="front_stock",
            reference_id=transfer.id,
            variant_id=variant.id,
            note=transfer.notes,
            locked=locked,
        )

    alerts = _split_alerts(branch.id, splits)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="front_stock.create",
        target_type="front_stock_transfer",
        target_id=transfer.id,
        metadata_json={
            "branch_id": branch.id,
            "lines_count": len(transfer.lines),
            "negative_alerts": len(alerts),
        },
    )
    db.flush()
    log_inventory_event(
        "front_stock.committed",
        front_stock_transfer_id=transfer.id,
        branch_id=branch.id,
        lines=len(transfer.lines),
    )
    return FrontStockResult(transfer=transfer, alerts=alerts)


def void_front_stock_transfer(db: Session, transfer: FrontStockTransfer, *, actor_id: str) -> FrontStockResult:
    if transfer.status != FRONT_STOCK_STATUS_COMMITTED:
        raise ConflictError(f"Front-stock transfer {transfer.id} is already voided", code=ALREADY_VOIDED)

    locked = lock_ledger_rows(db, [(transfer.branch_id, line.item_id) for line in transfer.lines])
    splits: dict[str, tuple[int, int]] = {}
    for line in transfer.lines:
        splits[line.item_id] = apply_front_delta(
            db,
            branch_id=transfer.branch_id,
            item_id=line.item_id,
            front_delta=-line.base_qty,
            reason="front_stock_void",
            reference_id=transfer.id,
            variant_id=line.variant_id,
            locked=locked,
        )

    transfer.status = FRONT_STOCK_STATUS_VOIDED
    transfer.voided_by = actor_id
    transfer.voided_at = datetime.now(timezone.utc)

    log_audit_event(
        db,
        actor_id=actor_id,
        action="front_stock.void",
        target_type="front_stock_transfer",
        target_id=transfer.id,
        metadata_json={"lines_count": len(transfer.lines)},
    )
    db.flush()
    log_inventory_event("front_stock.voided", front_stock_transfer_id=transfer.id, branch_id=transfer.branch_id)
    return FrontStockResult(transfer=transfer, alerts=_split_alerts(transfer.branch_id, splits))

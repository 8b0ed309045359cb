from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.core.errors import (
    ALREADY_VOIDED,
    BRANCH_NOT_FOUND,
    DUPLICATE_LINE,
    EMPTY_LINES,
    ConflictError,
    ValidationError,
)
from stockroom.core.id_utils import generate_shortuuid
from stockroom.core.observability import log_inventory_event
from stockroom.models.adjustment import ADJUSTMENT_STATUS_COMMITTED, ADJUSTMENT_STATUS_VOIDED, StockAdjustment
from stockroom.models.branch import Branch
from stockroom.schemas.adjustment import AdjustmentCreateIn
from stockroom.services.audit_service import log_audit_event
from stockroom.services.catalog_service import resolve_line_variant
from stockroom.services.conversion import to_line_base_units
from stockroom.services.stock_ledger_service import (
    StockAlert,
    apply_delta,
    lock_ledger_rows,
    negative_stock_alert,
)


@dataclass
class AdjustmentResult:
    adjustments: list[StockAdjustment]
    skipped_zero_gap: int = 0
    alerts: list[StockAlert] = field(default_factory=list)


def gap_direction(total_gap_amount: int) -> str:
    if total_gap_amount > 0:
        return "increase"
    if total_gap_amount < 0:
        return "decrease"
    return "none"


def create_adjustments(
    db: Session,
    payload: AdjustmentCreateIn,
    *,
    actor_id: str,
    persist_zero_gap: bool | None = None,
) -> AdjustmentResult:
    """Records one stock-take submission.

    Each line sets the branch ledger for its item to the counted quantity and
    keeps a snapshot of before/final/gap. Lines apply in submission order, so a
    later line for another variant of the same item sees the ledger left by the
    earlier one.
    """
    if persist_zero_gap is None:
        persist_zero_gap = settings.adjustment_persist_zero_gap

    branch = db.get(Branch, payload.branch_id)
    if branch is None or not branch.is_active:
        raise ValidationError(f"Branch {payload.branch_id} not found", code=BRANCH_NOT_FOUND)

    if not payload.items:
        raise ValidationError("A stock-take needs at least one line", code=EMPTY_LINES)
    variant_ids = [line.variant_id for line in payload.items]
    duplicates = sorted({variant_id for variant_id in variant_ids if variant_ids.count(variant_id) > 1})
    if duplicates:
        raise ConflictError(
            "Each variant may be counted only once per submission",
            code=DUPLICATE_LINE,
            details=[{"variant_id": variant_id} for variant_id in duplicates],
        )

    resolved = []
    for line in payload.items:
        item, variant = resolve_line_variant(db, item_id=line.item_id, variant_id=line.variant_id)
        resolved.append((line, item, variant, to_line_base_units(line.actual_qty, variant)))
    locked = lock_ledger_rows(db, [(branch.id, item.id) for _, item, _, _ in resolved])

    submission_id = generate_shortuuid()
    transaction_date = payload.transaction_date or datetime.now(timezone.utc)
    result = AdjustmentResult(adjustments=[])
    final_quantities: dict[str, int] = {}

    for line, item, variant, final_amount in resolved:
        before_amount = int(locked[(branch.id, item.id)].quantity)
        total_gap_amount = final_amount - before_amount

        if total_gap_amount == 0 and not persist_zero_gap:
            result.skipped_zero_gap += 1
            continue

        adjustment = StockAdjustment(
            id=generate_shortuuid(),
            submission_id=submission_id,
            transaction_date=transaction_date,
            branch_id=branch.id,
            item_id=item.id,
            variant_id=variant.id,
            actual_qty=line.actual_qty,
            conversion_amount=variant.conversion_amount,
            before_amount=before_amount,
            final_amount=final_amount,
            total_gap_amount=total_gap_amount,
            notes=payload.notes,
            created_by=actor_id,
            status=ADJUSTMENT_STATUS_COMMITTED,
        )
        db.add(adjustment)
        result.adjustments.append(adjustment)

        if total_gap_amount != 0:
            final_quantities[item.id] = apply_delta(
                db,
                branch_id=branch.id,
                item_id=item.id,
                qty_delta=total_gap_amount,
                reason="adjustment",
                reference_id=adjustment.id,
                variant_id=variant.id,
                note=payload.notes,
                locked=locked,
            )

    result.alerts = [
        alert
        for item_id, quantity in final_quantities.items()
        if (alert := negative_stock_alert(branch_id=branch.id, item_id=item_id, quantity=quantity))
    ]

    log_audit_event(
        db,
        actor_id=actor_id,
        action="adjustment.create",
        target_type="stock_adjustment_submission",
        target_id=submission_id,
        metadata_json={
            "branch_id": branch.id,
            "adjustment_ids": [adjustment.id for adjustment in result.adjustments],
            "skipped_zero_gap": result.skipped_zero_gap,
        },
    )
    db.flush()
    log_inventory_event(
        "adjustment.committed",
        submission_id=submission_id,
        branch_id=branch.id,
        records=len(result.adjustments),
        skipped_zero_gap=result.skipped_zero_gap,
    )
    return result


def void_adjustment(db: Session, adjustment: StockAdjustment, *, actor_id: str) -> AdjustmentResult:
    """Reverses the recorded gap.

    The reversal is delta based: if other transactions moved this ledger since
    the count, the ledger ends at its current value minus the gap rather than
    at the original before_amount.
    """
    if adjustment.status != ADJUSTMENT_STATUS_COMMITTED:
        raise ConflictError(f"Adjustment {adjustment.id} is already voided", code=ALREADY_VOIDED)

    result = AdjustmentResult(adjustments=[adjustment])
    if adjustment.total_gap_amount != 0:
        quantity = apply_delta(
            db,
            branch_id=adjustment.branch_id,
            item_id=adjustment.item_id,
            qty_delta=-adjustment.total_gap_amount,
            reason="adjustment_void",
            reference_id=adjustment.id,
            variant_id=adjustment.variant_id,
        )
        alert = negative_stock_alert(branch_id=adjustment.branch_id, item_id=adjustment.item_id, quantity=quantity)
        if alert:
            result.alerts.append(alert)

    adjustment.status = ADJUSTMENT_STATUS_VOIDED
    adjustment.voided_by = actor_id
    adjustment.voided_at = datetime.now(timezone.utc)

    log_audit_event(
        db,
        actor_id=actor_id,
        action="adjustment.void",
        target_type="stock_adjustment",
        target_id=adjustment.id,
        metadata_json={"reversed_gap": -adjustment.total_gap_amount},
    )
    db.flush()
    log_inventory_event("adjustment.voided", adjustment_id=adjustment.id, branch_id=adjustment.branch_id)
    return result

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from stockroom.core.errors import (
    ALREADY_VOIDED,
    BRANCH_NOT_FOUND,
    DUPLICATE_LINE,
    EMPTY_LINES,
    NON_POSITIVE_QTY,
    SAME_BRANCH,
    ConflictError,
    ValidationError,
)
from stockroom.core.id_utils import generate_shortuuid
from stockroom.core.observability import log_inventory_event
from stockroom.models.branch import Branch
from stockroom.models.transfer import (
    TRANSFER_STATUS_COMMITTED,
    TRANSFER_STATUS_VOIDED,
    Transfer,
    TransferLine,
)
from stockroom.schemas.transfer import TransferCreateIn
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
class TransferResult:
    transfer: Transfer
    alerts: list[StockAlert] = field(default_factory=list)


def _require_branch(db: Session, branch_id: str, role: str) -> Branch:
    branch = db.get(Branch, branch_id)
    if branch is None or not branch.is_active:
        raise ValidationError(f"{role} branch {branch_id} not found", code=BRANCH_NOT_FOUND)
    return branch


def _check_lines(payload: TransferCreateIn) -> None:
    if not payload.items:
        raise ValidationError("A transfer needs at least one line", code=EMPTY_LINES)
    bad = [line.variant_id for line in payload.items if line.qty <= 0]
    if bad:
        raise ValidationError(
            "Line quantities must be positive",
            code=NON_POSITIVE_QTY,
            details=[{"variant_id": variant_id} for variant_id in bad],
        )

    seen: set[str] = set()
    duplicates: list[str] = []
    for line in payload.items:
        if line.variant_id in seen and line.variant_id not in duplicates:
            duplicates.append(line.variant_id)
        seen.add(line.variant_id)
    if duplicates:
        raise ConflictError(
            "A variant may appear only once per transfer",
            code=DUPLICATE_LINE,
            details=[{"variant_id": variant_id} for variant_id in duplicates],
        )


def create_transfer(db: Session, payload: TransferCreateIn, *, actor_id: str) -> TransferResult:
    if payload.from_branch_id == payload.to_branch_id:
        raise ValidationError("Source and destination branches must be different", code=SAME_BRANCH)
    _require_branch(db, payload.from_branch_id, "Source")
    _require_branch(db, payload.to_branch_id, "Destination")
    _check_lines(payload)

    resolved = []
    for line in payload.items:
        item, variant = resolve_line_variant(db, item_id=line.item_id, variant_id=line.variant_id)
        resolved.append((line, item, variant, to_line_base_units(line.qty, variant)))

    branch_ids = (payload.from_branch_id, payload.to_branch_id)
    locked = lock_ledger_rows(db, [(branch_id, item.id) for _, item, _, _ in resolved for branch_id in branch_ids])

    transfer = Transfer(
        id=generate_shortuuid(),
        transaction_date=payload.transaction_date or datetime.now(timezone.utc),
        from_branch_id=payload.from_branch_id,
        to_branch_id=payload.to_branch_id,
        created_by=actor_id,
        status=TRANSFER_STATUS_COMMITTED,
        notes=payload.notes,
    )
    db.add(transfer)

    final_quantities: dict[tuple[str, str], int] = {}
    for line_no, (line, item, variant, base_qty) in enumerate(resolved, start=1):
        transfer.lines.append(
            TransferLine(
                id=generate_shortuuid(),
                line_no=line_no,
                item_id=item.id,
                variant_id=variant.id,
                qty=line.qty,
                conversion_amount=variant.conversion_amount,
                base_qty=base_qty,
            )
        )
        final_quantities[(transfer.from_branch_id, item.id)] = apply_delta(
            db,
            branch_id=transfer.from_branch_id,
            item_id=item.id,
            qty_delta=-base_qty,
            reason="transfer_out",
            reference_id=transfer.id,
            variant_id=variant.id,
            note=transfer.notes,
            locked=locked,
        )
        final_quantities[(transfer.to_branch_id, item.id)] = apply_delta(
            db,
            branch_id=transfer.to_branch_id,
            item_id=item.id,
            qty_delta=base_qty,
            reason="transfer_in",
            reference_id=transfer.id,
            variant_id=variant.id,
            note=transfer.notes,
            locked=locked,
        )

    alerts = [
        alert
        for (branch_id, item_id), quantity in final_quantities.items()
        if (alert := negative_stock_alert(branch_id=branch_id, item_id=item_id, quantity=quantity))
    ]

    log_audit_event(
        db,
        actor_id=actor_id,
        action="transfer.create",
        target_type="transfer",
        target_id=transfer.id,
        metadata_json={
            "from_branch_id": transfer.from_branch_id,
            "to_branch_id": transfer.to_branch_id,
            "lines_count": len(transfer.lines),
            "negative_alerts": len(alerts),
        },
    )
    db.flush()
    log_inventory_event(
        "transfer.committed",
        transfer_id=transfer.id,
        from_branch_id=transfer.from_branch_id,
        to_branch_id=transfer.to_branch_id,
        lines=len(transfer.lines),
    )
    return TransferResult(transfer=transfer, alerts=alerts)


def void_transfer(db: Session, transfer: Transfer, *, actor_id: str) -> TransferResult:
    if transfer.status != TRANSFER_STATUS_COMMITTED:
        raise ConflictError(f"Transfer {transfer.id} is already voided", code=ALREADY_VOIDED)

    branch_ids = (transfer.from_branch_id, transfer.to_branch_id)
    locked = lock_ledger_rows(db, [(branch_id, line.item_id) for line in transfer.lines for branch_id in branch_ids])

    final_quantities: dict[tuple[str, str], int] = {}
    for line in transfer.lines:
        final_quantities[(transfer.from_branch_id, line.item_id)] = apply_delta(
            db,
            branch_id=transfer.from_branch_id,
            item_id=line.item_id,
            qty_delta=line.base_qty,
            reason="transfer_void_out",
            reference_id=transfer.id,
            variant_id=line.variant_id,
            locked=locked,
        )
        final_quantities[(transfer.to_branch_id, line.item_id)] = apply_delta(
            db,
            branch_id=transfer.to_branch_id,
            item_id=line.item_id,
            qty_delta=-line.base_qty,
            reason="transfer_void_in",
            reference_id=transfer.id,
            variant_id=line.variant_id,
            locked=locked,
        )

    transfer.status = TRANSFER_STATUS_VOIDED
    transfer.voided_by = actor_id
    transfer.voided_at = datetime.now(timezone.utc)

    alerts = [
        alert
        for (branch_id, item_id), quantity in final_quantities.items()
        if (alert := negative_stock_alert(branch_id=branch_id, item_id=item_id, quantity=quantity))
    ]

    log_audit_event(
        db,
        actor_id=actor_id,
        action="transfer.void",
        target_type="transfer",
        target_id=transfer.id,
        metadata_json={"lines_count": len(transfer.lines)},
    )
    db.flush()
    log_inventory_event("transfer.voided", transfer_id=transfer.id)
    return TransferResult(transfer=transfer, alerts=alerts)

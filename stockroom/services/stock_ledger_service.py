import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockroom.core.config import settings
from stockroom.core.errors import ConsistencyFailure
from stockroom.core.observability import log_inventory_event
from stockroom.models.stock import StockLedgerEntry, StockMovement

LedgerKey = tuple[str, str]
T = TypeVar("T")


@dataclass(frozen=True)
class StockAlert:
    branch_id: str
    item_id: str
    quantity: int
    message: str
    bucket: str = "total"


def negative_stock_alert(
    *,
    branch_id: str,
    item_id: str,
    quantity: int,
    bucket: str = "total",
) -> StockAlert | None:
    if quantity >= 0:
        return None
    label = "Stock" if bucket == "total" else f"{bucket.capitalize()} stock"
    return StockAlert(
        branch_id=branch_id,
        item_id=item_id,
        quantity=quantity,
        message=f"{label} is negative ({quantity}) after this transaction",
        bucket=bucket,
    )


def get_quantity(db: Session, *, branch_id: str, item_id: str) -> int:
    quantity = db.execute(
        select(StockLedgerEntry.quantity).where(
            StockLedgerEntry.branch_id == branch_id,
            StockLedgerEntry.item_id == item_id,
        )
    ).scalar_one_or_none()
    return int(quantity) if quantity is not None else 0


def get_quantities(db: Session, *, branch_id: str, item_ids: list[str]) -> dict[str, int]:
    if not item_ids:
        return {}
    rows = db.execute(
        select(StockLedgerEntry.item_id, StockLedgerEntry.quantity).where(
            StockLedgerEntry.branch_id == branch_id,
            StockLedgerEntry.item_id.in_(item_ids),
        )
    ).all()
    return {item_id: int(quantity) for item_id, quantity in rows}


def get_front_split(db: Session, *, branch_id: str, item_ids: list[str]) -> dict[str, tuple[int, int]]:
    """Returns item_id -> (front, rear) for the branch. Items without a ledger row are absent."""
    if not item_ids:
        return {}
    rows = db.execute(
        select(StockLedgerEntry.item_id, StockLedgerEntry.quantity, StockLedgerEntry.front_quantity).where(
            StockLedgerEntry.branch_id == branch_id,
            StockLedgerEntry.item_id.in_(item_ids),
        )
    ).all()
    return {item_id: (int(front), int(quantity) - int(front)) for item_id, quantity, front in rows}


def _locked_entry(db: Session, *, branch_id: str, item_id: str) -> StockLedgerEntry | None:
    return db.execute(
        select(StockLedgerEntry)
        .where(
            StockLedgerEntry.branch_id == branch_id,
            StockLedgerEntry.item_id == item_id,
        )
        .with_for_update()
    ).scalar_one_or_none()


def lock_ledger_rows(db: Session, keys: Iterable[LedgerKey]) -> dict[LedgerKey, StockLedgerEntry]:
    """Locks every ledger row a submission touches, creating missing rows.

    Keys are locked in sorted order so two submissions over overlapping keys
    cannot deadlock each other.
    """
    locked: dict[LedgerKey, StockLedgerEntry] = {}
    for branch_id, item_id in sorted(set(keys)):
        entry = _locked_entry(db, branch_id=branch_id, item_id=item_id)
        if entry is None:
            entry = StockLedgerEntry(
                id=str(uuid.uuid4()),
                branch_id=branch_id,
                item_id=item_id,
                quantity=0,
                front_quantity=0,
            )
            db.add(entry)
            try:
                db.flush()
            except IntegrityError as exc:
                # Another submission created the same row first.
                raise ConsistencyFailure(
                    "Stock ledger row was created concurrently; retry the submission",
                ) from exc
        locked[(branch_id, item_id)] = entry
    return locked


def _flush_movement(db: Session, movement: StockMovement) -> None:
    db.add(movement)
    try:
        db.flush()
    except StaleDataError as exc:
        raise ConsistencyFailure(
            "Stock ledger row changed during the submission; retry the submission",
        ) from exc


def apply_delta(
    db: Session,
    *,
    branch_id: str,
    item_id: str,
    qty_delta: int,
    reason: str,
    reference_id: str | None = None,
    variant_id: str | None = None,
    note: str | None = None,
    locked: dict[LedgerKey, StockLedgerEntry] | None = None,
) -> int:
    key = (branch_id, item_id)
    entry = (locked or {}).get(key)
    if entry is None:
        entry = lock_ledger_rows(db, [key])[key]

    entry.quantity = int(entry.quantity) + qty_delta
    _flush_movement(
        db,
        StockMovement(
            id=str(uuid.uuid4()),
            branch_id=branch_id,
            item_id=item_id,
            variant_id=variant_id,
            qty_delta=qty_delta,
            front_qty_delta=0,
            reason=reason,
            reference_id=reference_id,
            note=note,
        ),
    )

    if entry.quantity < 0:
        log_inventory_event(
            "stock.negative_alert",
            level=logging.WARNING,
            branch_id=branch_id,
            item_id=item_id,
            quantity=entry.quantity,
            reason=reason,
            reference_id=reference_id,
        )
    return entry.quantity


def apply_front_delta(
    db: Session,
    *,
    branch_id: str,
    item_id: str,
    front_delta: int,
    reason: str,
    reference_id: str | None = None,
    variant_id: str | None = None,
    note: str | None = None,
    locked: dict[LedgerKey, StockLedgerEntry] | None = None,
) -> tuple[int, int]:
    """Shifts stock from rear to front (positive delta) or back, keeping the branch total.

    Returns the new (front, rear) split.
    """
    key = (branch_id, item_id)
    entry = (locked or {}).get(key)
    if entry is None:
        entry = lock_ledger_rows(db, [key])[key]

    entry.front_quantity = int(entry.front_quantity) + front_delta
    _flush_movement(
        db,
        StockMovement(
            id=str(uuid.uuid4()),
            branch_id=branch_id,
            item_id=item_id,
            variant_id=variant_id,
            qty_delta=0,
            front_qty_delta=front_delta,
            reason=reason,
            reference_id=reference_id,
            note=note,
        ),
    )

    front = int(entry.front_quantity)
    rear = int(entry.quantity) - front
    if front < 0 or rear < 0:
        log_inventory_event(
            "stock.negative_alert",
            level=logging.WARNING,
            branch_id=branch_id,
            item_id=item_id,
            front_quantity=front,
            rear_quantity=rear,
            reason=reason,
            reference_id=reference_id,
        )
    return front, rear


def commit_submission(db: Session) -> None:
    """Commits one submission, turning ledger races into ConsistencyFailure."""
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        raise ConsistencyFailure(
            "Stock ledger changed concurrently; the submission was not applied",
        ) from exc


def run_submission(db: Session, operation: Callable[[], T]) -> T:
    """Runs one ledger-mutating submission as a single transaction.

    On a concurrency conflict the whole submission is rolled back and replayed
    from scratch, up to `ledger_retry_attempts` times. Other errors propagate
    untouched after the rollback.
    """
    attempts = settings.ledger_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            commit_submission(db)
            return result
        except ConsistencyFailure:
            db.rollback()
            if attempt >= attempts:
                raise
            log_inventory_event("ledger.retry", level=logging.WARNING, attempt=attempt, max_attempts=attempts)
        except Exception:
            db.rollback()
            raise
    raise ConsistencyFailure("Stock ledger submission could not be applied")

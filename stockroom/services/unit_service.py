from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockroom.core.errors import DUPLICATE_UNIT_CODE, UNIT_IN_USE, ConflictError
from stockroom.core.id_utils import generate_shortuuid
from stockroom.models.catalog import ItemVariant, Unit
from stockroom.schemas.catalog import UnitCreateIn, UnitUpdateIn
from stockroom.services.audit_service import log_audit_event


def get_active_unit_by_code(db: Session, code: str) -> Unit | None:
    return db.execute(
        select(Unit).where(Unit.code == code.strip().upper(), Unit.deleted_at.is_(None))
    ).scalar_one_or_none()


def _ensure_code_free(db: Session, code: str, *, exclude_unit_id: str | None = None) -> None:
    stmt = select(Unit.id).where(Unit.code == code, Unit.deleted_at.is_(None))
    if exclude_unit_id:
        stmt = stmt.where(Unit.id != exclude_unit_id)
    if db.execute(stmt).first():
        raise ConflictError(f"Unit code {code} already exists", code=DUPLICATE_UNIT_CODE)


def unit_in_use(db: Session, unit: Unit) -> bool:
    return (
        db.execute(
            select(ItemVariant.id)
            .where(ItemVariant.unit_code == unit.code, ItemVariant.deleted_at.is_(None))
            .limit(1)
        ).first()
        is not None
    )


def create_unit(db: Session, payload: UnitCreateIn, *, actor_id: str) -> Unit:
    _ensure_code_free(db, payload.code)
    unit = Unit(id=generate_shortuuid(), code=payload.code, name=payload.name)
    db.add(unit)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="unit.create",
        target_type="unit",
        target_id=unit.id,
        metadata_json={"code": unit.code, "name": unit.name},
    )
    db.flush()
    return unit


def update_unit(db: Session, unit: Unit, payload: UnitUpdateIn, *, actor_id: str) -> Unit:
    changes: dict[str, str] = {}
    if payload.code is not None and payload.code != unit.code:
        if unit_in_use(db, unit):
            raise ConflictError(
                f"Unit {unit.code} is used by active variants and its code cannot change",
                code=UNIT_IN_USE,
            )
        _ensure_code_free(db, payload.code, exclude_unit_id=unit.id)
        changes["code"] = payload.code
        unit.code = payload.code
    if payload.name is not None and payload.name != unit.name:
        changes["name"] = payload.name
        unit.name = payload.name

    if changes:
        log_audit_event(
            db,
            actor_id=actor_id,
            action="unit.update",
            target_type="unit",
            target_id=unit.id,
            metadata_json=changes,
        )
    db.flush()
    return unit


def delete_unit(db: Session, unit: Unit, *, actor_id: str) -> None:
    if unit_in_use(db, unit):
        raise ConflictError(f"Unit {unit.code} is used by active variants", code=UNIT_IN_USE)
    unit.deleted_at = datetime.now(timezone.utc)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="unit.delete",
        target_type="unit",
        target_id=unit.id,
        metadata_json={"code": unit.code},
    )
    db.flush()

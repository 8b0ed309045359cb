from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.models.catalog import Unit
from stockroom.schemas.catalog import UnitCreateIn, UnitListOut, UnitOut, UnitUpdateIn
from stockroom.schemas.common import PaginationMeta
from stockroom.services.unit_service import create_unit, delete_unit, update_unit

router = APIRouter(prefix="/units", tags=["units"])


def _unit_or_404(db: Session, unit_id: str) -> Unit:
    unit = db.execute(
        select(Unit).where(Unit.id == unit_id, Unit.deleted_at.is_(None))
    ).scalar_one_or_none()
    if not unit:
        raise HTTPException(status_code=404, detail="Unit not found")
    return unit


def _unit_out(unit: Unit) -> UnitOut:
    return UnitOut(
        id=unit.id,
        code=unit.code,
        name=unit.name,
        created_at=unit.created_at,
        updated_at=unit.updated_at,
    )


@router.post(
    "",
    response_model=UnitOut,
    summary="Create unit of measure",
    responses=error_responses(409, 422, 500),
)
def create_unit_endpoint(
    payload: UnitCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    unit = create_unit(db, payload, actor_id=actor_id)
    db.commit()
    db.refresh(unit)
    return _unit_out(unit)


@router.get(
    "",
    response_model=UnitListOut,
    summary="List units of measure",
    responses=error_responses(422, 500),
)
def list_units(
    q: str | None = Query(default=None, min_length=1, max_length=100),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    filters = [Unit.deleted_at.is_(None)]
    if q:
        pattern = f"%{q.strip().lower()}%"
        filters.append(or_(func.lower(Unit.code).like(pattern), func.lower(Unit.name).like(pattern)))

    total = int(db.execute(select(func.count(Unit.id)).where(*filters)).scalar_one())
    rows = db.execute(
        select(Unit).where(*filters).order_by(Unit.code.asc()).offset(offset).limit(limit)
    ).scalars().all()
    items = [_unit_out(row) for row in rows]
    count = len(items)
    return UnitListOut(
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
    "/{unit_id}",
    response_model=UnitOut,
    summary="Get unit of measure",
    responses=error_responses(404, 422, 500),
)
def get_unit(unit_id: str, db: Session = Depends(get_db)):
    return _unit_out(_unit_or_404(db, unit_id))


@router.patch(
    "/{unit_id}",
    response_model=UnitOut,
    summary="Update unit of measure",
    description="The code of a unit referenced by active variants cannot change.",
    responses=error_responses(404, 409, 422, 500),
)
def update_unit_endpoint(
    unit_id: str,
    payload: UnitUpdateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    unit = update_unit(db, _unit_or_404(db, unit_id), payload, actor_id=actor_id)
    db.commit()
    db.refresh(unit)
    return _unit_out(unit)


@router.delete(
    "/{unit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete unit of measure",
    responses=error_responses(404, 409, 422, 500),
)
def delete_unit_endpoint(
    unit_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    delete_unit(db, _unit_or_404(db, unit_id), actor_id=actor_id)
    db.commit()
    return None

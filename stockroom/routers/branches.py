from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.api_docs import error_responses
from stockroom.core.config import settings
from stockroom.core.deps import get_actor_id, get_db
from stockroom.core.errors import DUPLICATE_BRANCH_CODE, ConflictError
from stockroom.core.id_utils import generate_shortuuid
from stockroom.models.branch import Branch
from stockroom.schemas.branch import BranchCreateIn, BranchListOut, BranchOut
from stockroom.schemas.common import PaginationMeta
from stockroom.services.audit_service import log_audit_event

router = APIRouter(prefix="/branches", tags=["branches"])


def _branch_or_404(db: Session, branch_id: str) -> Branch:
    branch = db.get(Branch, branch_id)
    if not branch:
        raise HTTPException(status_code=404, detail="Branch not found")
    return branch


def _branch_out(branch: Branch) -> BranchOut:
    return BranchOut(
        id=branch.id,
        name=branch.name,
        code=branch.code,
        is_active=branch.is_active,
        created_at=branch.created_at,
        updated_at=branch.updated_at,
    )


@router.post(
    "",
    response_model=BranchOut,
    summary="Create branch",
    responses=error_responses(409, 422, 500),
)
def create_branch(
    payload: BranchCreateIn,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    normalized_code = payload.code.upper()
    exists = db.execute(
        select(Branch.id).where(func.upper(Branch.code) == normalized_code)
    ).scalar_one_or_none()
    if exists:
        raise ConflictError(f"Branch code {normalized_code} already exists", code=DUPLICATE_BRANCH_CODE)

    branch = Branch(
        id=generate_shortuuid(),
        name=payload.name,
        code=normalized_code,
        is_active=True,
    )
    db.add(branch)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="branch.create",
        target_type="branch",
        target_id=branch.id,
        metadata_json={"name": branch.name, "code": branch.code},
    )
    db.commit()
    db.refresh(branch)
    return _branch_out(branch)


@router.get(
    "",
    response_model=BranchListOut,
    summary="List branches",
    responses=error_responses(422, 500),
)
def list_branches(
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    count_stmt = select(func.count(Branch.id))
    stmt = select(Branch)
    if not include_inactive:
        count_stmt = count_stmt.where(Branch.is_active.is_(True))
        stmt = stmt.where(Branch.is_active.is_(True))

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(stmt.order_by(Branch.created_at.asc()).offset(offset).limit(limit)).scalars().all()
    items = [_branch_out(row) for row in rows]
    count = len(items)
    return BranchListOut(
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
    "/{branch_id}",
    response_model=BranchOut,
    summary="Get branch",
    responses=error_responses(404, 422, 500),
)
def get_branch(branch_id: str, db: Session = Depends(get_db)):
    return _branch_out(_branch_or_404(db, branch_id))

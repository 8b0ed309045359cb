from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockroom.db.base import Base

ADJUSTMENT_STATUS_COMMITTED = "committed"
ADJUSTMENT_STATUS_VOIDED = "voided"


class StockAdjustment(Base):
    """
    One stock-take line. before/final/gap are snapshots taken at creation and
    never recomputed, so void reverses exactly the gap that was applied.
    """
    __tablename__ = "stock_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    submission_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("item_variants.id"), nullable=False, index=True)

    actual_qty: Mapped[int] = mapped_column(Integer, nullable=False)  # counted, in the variant's unit
    conversion_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    before_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # base units
    final_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # base units
    total_gap_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # final - before

    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ADJUSTMENT_STATUS_COMMITTED, server_default=ADJUSTMENT_STATUS_COMMITTED
    )
    voided_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("actual_qty >= 0", name="ck_stock_adjustments_actual_qty_non_negative"),
        Index("ix_stock_adjustments_branch_item_created_at", "branch_id", "item_id", "created_at"),
        Index("ix_stock_adjustments_status_transaction_date", "status", "transaction_date"),
    )

    @property
    def final_total_amount(self) -> int:
        return self.final_amount

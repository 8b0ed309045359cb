from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.db.base import Base

FRONT_STOCK_STATUS_COMMITTED = "committed"
FRONT_STOCK_STATUS_VOIDED = "voided"


class FrontStockTransfer(Base):
    """
    Moves stock between the rear (warehouse) and front (shop floor) of one
    branch. The branch total never changes.
    """
    __tablename__ = "front_stock_transfers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FRONT_STOCK_STATUS_COMMITTED, server_default=FRONT_STOCK_STATUS_COMMITTED
    )
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    voided_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    lines: Mapped[list["FrontStockTransferLine"]] = relationship(
        back_populates="transfer",
        order_by="FrontStockTransferLine.line_no",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_front_stock_transfers_branch_transaction_date", "branch_id", "transaction_date"),
    )


class FrontStockTransferLine(Base):
    __tablename__ = "front_stock_transfer_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("front_stock_transfers.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("item_variants.id"), nullable=False, index=True)
    # Positive moves rear -> front, negative moves front -> rear.
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    conversion_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    base_qty: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transfer: Mapped[FrontStockTransfer] = relationship(back_populates="lines")

    __table_args__ = (
        UniqueConstraint("transfer_id", "variant_id", name="uq_front_stock_transfer_lines_transfer_variant"),
        CheckConstraint("qty <> 0", name="ck_front_stock_transfer_lines_non_zero_qty"),
    )

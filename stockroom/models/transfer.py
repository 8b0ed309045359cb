from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.db.base import Base

TRANSFER_STATUS_COMMITTED = "committed"
TRANSFER_STATUS_VOIDED = "voided"


class Transfer(Base):
    __tablename__ = "transfers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    from_branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    to_branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TRANSFER_STATUS_COMMITTED, server_default=TRANSFER_STATUS_COMMITTED
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

    lines: Mapped[list["TransferLine"]] = relationship(
        back_populates="transfer",
        order_by="TransferLine.line_no",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("from_branch_id <> to_branch_id", name="ck_transfers_distinct_branches"),
        Index("ix_transfers_status_transaction_date", "status", "transaction_date"),
    )


class TransferLine(Base):
    __tablename__ = "transfer_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(String(36), ForeignKey("transfers.id"), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("item_variants.id"), nullable=False, index=True)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)  # in the variant's own unit
    # Snapshotted at commit so void reverses exactly what was applied.
    conversion_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    base_qty: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transfer: Mapped[Transfer] = relationship(back_populates="lines")

    __table_args__ = (
        UniqueConstraint("transfer_id", "variant_id", name="uq_transfer_lines_transfer_variant"),
        CheckConstraint("qty > 0", name="ck_transfer_lines_positive_qty"),
    )

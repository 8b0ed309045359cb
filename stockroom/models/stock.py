from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stockroom.db.base import Base


class StockLedgerEntry(Base):
    """
    Current quantity of one item at one branch, in base units.
    Negative quantities are allowed and treated as an alert state.
    """
    __tablename__ = "stock_ledger"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    # Portion of `quantity` on the shop floor; the rear (warehouse) portion is quantity - front_quantity.
    front_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("branch_id", "item_id", name="uq_stock_ledger_branch_item"),
    )

    __mapper_args__ = {"version_id_col": version}


class StockMovement(Base):
    """
    One row per applied ledger delta. Positive = stock in, negative = stock out.
    """
    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    branch_id: Mapped[str] = mapped_column(String(36), ForeignKey("branches.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    variant_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("item_variants.id"), nullable=True)
    qty_delta: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Shelf moves inside a branch leave qty_delta at 0 and only shift stock between rear and front.
    front_qty_delta: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    # "transfer_out", "transfer_in", "transfer_void_out", "transfer_void_in", "adjustment", "adjustment_void",
    # "front_stock", "front_stock_void"
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    note: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index(
            "ix_stock_movements_branch_item_created_at",
            "branch_id",
            "item_id",
            "created_at",
        ),
    )

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockroom.db.base import Base


class Unit(Base):
    __tablename__ = "units"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g., PCS, DUS, BOX
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "ux_units_code_active",
            "code",
            unique=True,
            postgresql_where=deleted_at.is_(None),
            sqlite_where=deleted_at.is_(None),
        ),
    )


class Item(Base):
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    # Category and supplier catalogs live outside this service.
    category_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    supplier_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    recorded_buy_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_items_active_created_at", "is_active", "created_at"),
        Index(
            "ux_items_code_lower_active",
            func.lower(code),
            unique=True,
            postgresql_where=deleted_at.is_(None),
            sqlite_where=deleted_at.is_(None),
        ),
    )


class ItemVariant(Base):
    """
    A sellable unit of measure for an item. Stock is always kept in base units;
    conversion_amount says how many base units one of this variant holds.
    """
    __tablename__ = "item_variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)

    code: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    conversion_amount: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = base unit

    sell_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    recorded_profit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    recorded_profit_percentage: Mapped[Decimal] = mapped_column(
        Numeric(9, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "ux_item_variants_item_code_active",
            "item_id",
            func.lower(code),
            unique=True,
            postgresql_where=deleted_at.is_(None),
            sqlite_where=deleted_at.is_(None),
        ),
        # At most one active base-unit variant per item.
        Index(
            "ux_item_variants_item_base_unit_active",
            "item_id",
            unique=True,
            postgresql_where=(conversion_amount == 1) & deleted_at.is_(None),
            sqlite_where=(conversion_amount == 1) & deleted_at.is_(None),
        ),
    )

    @property
    def is_base_unit(self) -> bool:
        return self.conversion_amount == 1

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

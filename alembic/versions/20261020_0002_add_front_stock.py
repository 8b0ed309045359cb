"""add front stock split and front stock transfers

Revision ID: 20261020_0002
Revises: 20261019_0001
Create Date: 2026-10-20 10:15:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261020_0002"
down_revision: Union[str, None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _has_column(inspector: sa.Inspector, table_name: str, column_name: str) -> bool:
    return column_name in {column["name"] for column in inspector.get_columns(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _has_column(inspector, "stock_ledger", "front_quantity"):
        op.add_column(
            "stock_ledger",
            sa.Column("front_quantity", sa.BigInteger(), nullable=False, server_default="0"),
        )
    if not _has_column(inspector, "stock_movements", "front_qty_delta"):
        op.add_column(
            "stock_movements",
            sa.Column("front_qty_delta", sa.BigInteger(), nullable=False, server_default="0"),
        )

    if not _table_exists(inspector, "front_stock_transfers"):
        op.create_table(
            "front_stock_transfers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("branch_id", sa.String(length=36), nullable=False),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="committed"),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("voided_by", sa.String(length=36), nullable=True),
            sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_front_stock_transfers_branch_id", "front_stock_transfers", ["branch_id"], unique=False)
        op.create_index(
            "ix_front_stock_transfers_branch_transaction_date",
            "front_stock_transfers",
            ["branch_id", "transaction_date"],
            unique=False,
        )

    if not _table_exists(inspector, "front_stock_transfer_lines"):
        op.create_table(
            "front_stock_transfer_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transfer_id", sa.String(length=36), nullable=False),
            sa.Column("line_no", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=False),
            sa.Column("qty", sa.Integer(), nullable=False),
            sa.Column("conversion_amount", sa.Integer(), nullable=False),
            sa.Column("base_qty", sa.BigInteger(), nullable=False),
            sa.CheckConstraint("qty <> 0", name="ck_front_stock_transfer_lines_non_zero_qty"),
            sa.ForeignKeyConstraint(["transfer_id"], ["front_stock_transfers.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["item_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "transfer_id",
                "variant_id",
                name="uq_front_stock_transfer_lines_transfer_variant",
            ),
        )
        op.create_index(
            "ix_front_stock_transfer_lines_transfer_id",
            "front_stock_transfer_lines",
            ["transfer_id"],
            unique=False,
        )
        op.create_index("ix_front_stock_transfer_lines_item_id", "front_stock_transfer_lines", ["item_id"], unique=False)
        op.create_index(
            "ix_front_stock_transfer_lines_variant_id",
            "front_stock_transfer_lines",
            ["variant_id"],
            unique=False,
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in ("front_stock_transfer_lines", "front_stock_transfers"):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
    if _has_column(inspector, "stock_movements", "front_qty_delta"):
        op.drop_column("stock_movements", "front_qty_delta")
    if _has_column(inspector, "stock_ledger", "front_quantity"):
        op.drop_column("stock_ledger", "front_quantity")

"""create stockroom tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "branches"):
        op.create_table(
            "branches",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )
        op.create_index("ix_branches_active_created_at", "branches", ["is_active", "created_at"], unique=False)

    if not _table_exists(inspector, "units"):
        op.create_table(
            "units",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ux_units_code_active",
            "units",
            ["code"],
            unique=True,
            postgresql_where=sa.text("deleted_at IS NULL"),
            sqlite_where=sa.text("deleted_at IS NULL"),
        )

    if not _table_exists(inspector, "items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("code", sa.String(length=100), nullable=False),
            sa.Column("category_id", sa.String(length=36), nullable=True),
            sa.Column("supplier_id", sa.String(length=36), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("recorded_buy_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_items_category_id", "items", ["category_id"], unique=False)
        op.create_index("ix_items_supplier_id", "items", ["supplier_id"], unique=False)
        op.create_index("ix_items_active_created_at", "items", ["is_active", "created_at"], unique=False)
        op.create_index(
            "ux_items_code_lower_active",
            "items",
            [sa.text("lower(code)")],
            unique=True,
            postgresql_where=sa.text("deleted_at IS NULL"),
            sqlite_where=sa.text("deleted_at IS NULL"),
        )

    if not _table_exists(inspector, "item_variants"):
        op.create_table(
            "item_variants",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=100), nullable=False),
            sa.Column("unit_code", sa.String(length=20), nullable=False),
            sa.Column("conversion_amount", sa.Integer(), nullable=False),
            sa.Column("sell_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("recorded_profit_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("recorded_profit_percentage", sa.Numeric(9, 2), nullable=False, server_default="0"),
            *_timestamps(),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_item_variants_item_id", "item_variants", ["item_id"], unique=False)
        op.create_index("ix_item_variants_unit_code", "item_variants", ["unit_code"], unique=False)
        op.create_index(
            "ux_item_variants_item_code_active",
            "item_variants",
            ["item_id", sa.text("lower(code)")],
            unique=True,
            postgresql_where=sa.text("deleted_at IS NULL"),
            sqlite_where=sa.text("deleted_at IS NULL"),
        )
        op.create_index(
            "ux_item_variants_item_base_unit_active",
            "item_variants",
            ["item_id"],
            unique=True,
            postgresql_where=sa.text("conversion_amount = 1 AND deleted_at IS NULL"),
            sqlite_where=sa.text("conversion_amount = 1 AND deleted_at IS NULL"),
        )

    if not _table_exists(inspector, "stock_ledger"):
        op.create_table(
            "stock_ledger",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("branch_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("quantity", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("branch_id", "item_id", name="uq_stock_ledger_branch_item"),
        )
        op.create_index("ix_stock_ledger_branch_id", "stock_ledger", ["branch_id"], unique=False)
        op.create_index("ix_stock_ledger_item_id", "stock_ledger", ["item_id"], unique=False)

    if not _table_exists(inspector, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("branch_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=True),
            sa.Column("qty_delta", sa.BigInteger(), nullable=False),
            sa.Column("reason", sa.String(length=50), nullable=False),
            sa.Column("reference_id", sa.String(length=36), nullable=True),
            sa.Column("note", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["item_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stock_movements_branch_id", "stock_movements", ["branch_id"], unique=False)
        op.create_index("ix_stock_movements_item_id", "stock_movements", ["item_id"], unique=False)
        op.create_index("ix_stock_movements_reference_id", "stock_movements", ["reference_id"], unique=False)
        op.create_index(
            "ix_stock_movements_branch_item_created_at",
            "stock_movements",
            ["branch_id", "item_id", "created_at"],
            unique=False,
        )

    if not _table_exists(inspector, "transfers"):
        op.create_table(
            "transfers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("from_branch_id", sa.String(length=36), nullable=False),
            sa.Column("to_branch_id", sa.String(length=36), nullable=False),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="committed"),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("voided_by", sa.String(length=36), nullable=True),
            sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("from_branch_id <> to_branch_id", name="ck_transfers_distinct_branches"),
            sa.ForeignKeyConstraint(["from_branch_id"], ["branches.id"]),
            sa.ForeignKeyConstraint(["to_branch_id"], ["branches.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_transfers_from_branch_id", "transfers", ["from_branch_id"], unique=False)
        op.create_index("ix_transfers_to_branch_id", "transfers", ["to_branch_id"], unique=False)
        op.create_index(
            "ix_transfers_status_transaction_date",
            "transfers",
            ["status", "transaction_date"],
            unique=False,
        )

    if not _table_exists(inspector, "transfer_lines"):
        op.create_table(
            "transfer_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("transfer_id", sa.String(length=36), nullable=False),
            sa.Column("line_no", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=False),
            sa.Column("qty", sa.Integer(), nullable=False),
            sa.Column("conversion_amount", sa.Integer(), nullable=False),
            sa.Column("base_qty", sa.BigInteger(), nullable=False),
            sa.CheckConstraint("qty > 0", name="ck_transfer_lines_positive_qty"),
            sa.ForeignKeyConstraint(["transfer_id"], ["transfers.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["item_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("transfer_id", "variant_id", name="uq_transfer_lines_transfer_variant"),
        )
        op.create_index("ix_transfer_lines_transfer_id", "transfer_lines", ["transfer_id"], unique=False)
        op.create_index("ix_transfer_lines_item_id", "transfer_lines", ["item_id"], unique=False)
        op.create_index("ix_transfer_lines_variant_id", "transfer_lines", ["variant_id"], unique=False)

    if not _table_exists(inspector, "stock_adjustments"):
        op.create_table(
            "stock_adjustments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("submission_id", sa.String(length=36), nullable=False),
            sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("branch_id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=False),
            sa.Column("actual_qty", sa.Integer(), nullable=False),
            sa.Column("conversion_amount", sa.Integer(), nullable=False),
            sa.Column("before_amount", sa.BigInteger(), nullable=False),
            sa.Column("final_amount", sa.BigInteger(), nullable=False),
            sa.Column("total_gap_amount", sa.BigInteger(), nullable=False),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="committed"),
            sa.Column("voided_by", sa.String(length=36), nullable=True),
            sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("actual_qty >= 0", name="ck_stock_adjustments_actual_qty_non_negative"),
            sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["item_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stock_adjustments_submission_id", "stock_adjustments", ["submission_id"], unique=False)
        op.create_index("ix_stock_adjustments_branch_id", "stock_adjustments", ["branch_id"], unique=False)
        op.create_index("ix_stock_adjustments_item_id", "stock_adjustments", ["item_id"], unique=False)
        op.create_index("ix_stock_adjustments_variant_id", "stock_adjustments", ["variant_id"], unique=False)
        op.create_index(
            "ix_stock_adjustments_branch_item_created_at",
            "stock_adjustments",
            ["branch_id", "item_id", "created_at"],
            unique=False,
        )
        op.create_index(
            "ix_stock_adjustments_status_transaction_date",
            "stock_adjustments",
            ["status", "transaction_date"],
            unique=False,
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"], unique=False)
        op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"], unique=False)
        op.create_index("ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"], unique=False)
        op.create_index(
            "ix_audit_logs_target_created_at",
            "audit_logs",
            ["target_type", "target_id", "created_at"],
            unique=False,
        )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in (
        "audit_logs",
        "stock_adjustments",
        "transfer_lines",
        "transfers",
        "stock_movements",
        "stock_ledger",
        "item_variants",
        "items",
        "units",
        "branches",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)

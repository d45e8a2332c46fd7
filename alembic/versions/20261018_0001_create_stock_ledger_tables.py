"""create stock ledger tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _create_index(inspector: sa.Inspector, name: str, table_name: str, columns: list[str]) -> None:
    if not _index_exists(inspector, table_name, name):
        op.create_index(name, table_name, columns, unique=False)


def _quantity_column(name: str, *, nullable: bool = False, zero_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(14, 3),
        nullable=nullable,
        server_default="0" if zero_default else None,
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("category", sa.String(length=50), nullable=False),
            sa.Column("unit", sa.String(length=10), nullable=False, server_default="pcs"),
            _quantity_column("current_quantity", zero_default=True),
            _quantity_column("minimum_quantity", zero_default=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("current_quantity >= 0", name="ck_items_current_quantity_non_negative"),
            sa.CheckConstraint("minimum_quantity >= 0", name="ck_items_minimum_quantity_non_negative"),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "counterparties"):
        op.create_table(
            "counterparties",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("contact_person", sa.String(length=100), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_receipts"):
        op.create_table(
            "stock_receipts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("counterparty_id", sa.String(length=36), nullable=False),
            sa.Column("document_no", sa.String(length=50), nullable=False),
            sa.Column("movement_date", sa.Date(), nullable=False),
            _quantity_column("quantity_received"),
            sa.Column("remarks", sa.String(length=500), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["counterparty_id"], ["counterparties.id"]),
            sa.UniqueConstraint(
                "counterparty_id", "document_no", name="ux_stock_receipts_counterparty_document"
            ),
            sa.CheckConstraint("quantity_received > 0", name="ck_stock_receipts_quantity_positive"),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_dispatches"):
        op.create_table(
            "stock_dispatches",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("counterparty_id", sa.String(length=36), nullable=False),
            sa.Column("document_no", sa.String(length=50), nullable=False),
            sa.Column("movement_date", sa.Date(), nullable=False),
            _quantity_column("approved_qty"),
            _quantity_column("customer_return_qty", zero_default=True),
            _quantity_column("reject_qty", zero_default=True),
            _quantity_column("retained_qty"),
            _quantity_column("total_qty"),
            sa.Column("return_reason", sa.String(length=500), nullable=True),
            sa.Column("reject_reason", sa.String(length=500), nullable=True),
            sa.Column("remarks", sa.String(length=500), nullable=True),
            sa.Column("created_by", sa.String(length=64), nullable=False),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.ForeignKeyConstraint(["counterparty_id"], ["counterparties.id"]),
            sa.UniqueConstraint(
                "counterparty_id", "document_no", name="ux_stock_dispatches_counterparty_document"
            ),
            sa.CheckConstraint("approved_qty > 0", name="ck_stock_dispatches_approved_positive"),
            sa.CheckConstraint(
                "customer_return_qty + reject_qty <= approved_qty",
                name="ck_stock_dispatches_sub_quantities_within_approved",
            ),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "stock_adjustments"):
        op.create_table(
            "stock_adjustments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("movement_date", sa.Date(), nullable=False),
            _quantity_column("signed_delta"),
            sa.Column("reason", sa.String(length=500), nullable=True),
            _quantity_column("previous_quantity"),
            _quantity_column("new_quantity"),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
            sa.CheckConstraint("signed_delta <> 0", name="ck_stock_adjustments_delta_non_zero"),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=64), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("item_id", sa.String(length=36), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
        )

    inspector = sa.inspect(bind)

    _create_index(inspector, "ix_items_category", "items", ["category"])
    _create_index(inspector, "ix_items_active_category_name", "items", ["active", "category", "name"])
    _create_index(inspector, "ix_counterparties_kind_name", "counterparties", ["kind", "name"])

    for table_name in ("stock_receipts", "stock_dispatches"):
        _create_index(inspector, f"ix_{table_name}_item_id", table_name, ["item_id"])
        _create_index(inspector, f"ix_{table_name}_counterparty_id", table_name, ["counterparty_id"])
        _create_index(
            inspector,
            f"ix_{table_name}_item_date_created_at",
            table_name,
            ["item_id", "movement_date", "created_at"],
        )

    _create_index(inspector, "ix_stock_adjustments_item_id", "stock_adjustments", ["item_id"])
    _create_index(
        inspector,
        "ix_stock_adjustments_item_date_created_at",
        "stock_adjustments",
        ["item_id", "movement_date", "created_at"],
    )

    _create_index(inspector, "ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    _create_index(inspector, "ix_audit_logs_target_id", "audit_logs", ["target_id"])
    _create_index(inspector, "ix_audit_logs_item_id", "audit_logs", ["item_id"])
    _create_index(inspector, "ix_audit_logs_action_created_at", "audit_logs", ["action", "created_at"])
    _create_index(inspector, "ix_audit_logs_item_created_at", "audit_logs", ["item_id", "created_at"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in (
        "audit_logs",
        "stock_adjustments",
        "stock_dispatches",
        "stock_receipts",
        "counterparties",
        "items",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)

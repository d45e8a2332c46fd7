"""add rate and total amount to receipts and dispatches

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 15:20:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0002"
down_revision: Union[str, None] = "20261018_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_MOVEMENT_TABLES = ("stock_receipts", "stock_dispatches")


def _has_column(inspector: sa.Inspector, table_name: str, column_name: str) -> bool:
    return column_name in {column["name"] for column in inspector.get_columns(table_name)}


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in _MOVEMENT_TABLES:
        if not _has_column(inspector, table_name, "rate"):
            op.add_column(table_name, sa.Column("rate", sa.Numeric(14, 2), nullable=True))
        if not _has_column(inspector, table_name, "total_amount"):
            op.add_column(table_name, sa.Column("total_amount", sa.Numeric(18, 2), nullable=True))


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name in _MOVEMENT_TABLES:
        with op.batch_alter_table(table_name) as batch_op:
            if _has_column(inspector, table_name, "total_amount"):
                batch_op.drop_column("total_amount")
            if _has_column(inspector, table_name, "rate"):
                batch_op.drop_column("rate")

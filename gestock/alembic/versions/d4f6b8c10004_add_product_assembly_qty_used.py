"""add products.assembly_qty_used

Revision ID: d4f6b8c10004
Revises: c3e5a7b90003
Create Date: 2026-03-09
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "d4f6b8c10004"
down_revision: Union[str, Sequence[str], None] = "c3e5a7b90003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "products"
CK_QTY = "ck_product_assembly_qty_used_pos"


def upgrade() -> None:
    with op.batch_alter_table(TABLE_NAME) as batch:
        batch.add_column(sa.Column("assembly_qty_used", sa.Integer(), nullable=False, server_default="1"))
        batch.create_check_constraint(CK_QTY, "assembly_qty_used >= 1")


def downgrade() -> None:
    with op.batch_alter_table(TABLE_NAME) as batch:
        batch.drop_constraint(CK_QTY, type_="check")
        batch.drop_column("assembly_qty_used")

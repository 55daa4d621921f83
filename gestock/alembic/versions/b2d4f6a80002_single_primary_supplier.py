"""single primary supplier per product

Revision ID: b2d4f6a80002
Revises: a1c3e5f70001
Create Date: 2026-03-02
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "b2d4f6a80002"
down_revision: Union[str, Sequence[str], None] = "a1c3e5f70001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INDEX_NAME = "uq_product_supplier_primary"


def upgrade() -> None:
    # Doublons existants : on garde le lien principal le plus récemment tarifé
    op.execute(
        """
        UPDATE product_suppliers
        SET is_primary = false
        WHERE is_primary = true
          AND id NOT IN (
            SELECT id FROM (
                SELECT ps.id,
                       ROW_NUMBER() OVER (
                           PARTITION BY ps.product_id
                           ORDER BY ps.price_updated_at DESC, ps.id
                       ) AS rn
                FROM product_suppliers ps
                WHERE ps.is_primary = true
            ) ranked
            WHERE ranked.rn = 1
          );
        """
    )
    op.create_index(
        INDEX_NAME,
        "product_suppliers",
        ["product_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
        sqlite_where=sa.text("is_primary = 1"),
    )


def downgrade() -> None:
    op.drop_index(INDEX_NAME, table_name="product_suppliers")

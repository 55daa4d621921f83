"""add stocks nonneg constraints

Revision ID: c3e5a7b90003
Revises: b2d4f6a80002
Create Date: 2026-03-02
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c3e5a7b90003"
down_revision: Union[str, Sequence[str], None] = "b2d4f6a80002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "stocks"

CK_NEW = "ck_stock_quantity_new_nonneg"
CK_USED = "ck_stock_quantity_used_nonneg"


def _add_check_if_missing(constraint_name: str, check_sql: str) -> None:
    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{TABLE_NAME}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {TABLE_NAME}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    # Données déjà sales : clamp à 0 pour ne pas faire échouer la migration
    op.execute(f"UPDATE {TABLE_NAME} SET quantity_new = 0 WHERE quantity_new < 0;")
    op.execute(f"UPDATE {TABLE_NAME} SET quantity_used = 0 WHERE quantity_used < 0;")

    if op.get_bind().dialect.name == "postgresql":
        _add_check_if_missing(CK_NEW, "quantity_new >= 0")
        _add_check_if_missing(CK_USED, "quantity_used >= 0")
        return

    with op.batch_alter_table(TABLE_NAME) as batch:
        batch.create_check_constraint(CK_NEW, "quantity_new >= 0")
        batch.create_check_constraint(CK_USED, "quantity_used >= 0")


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute(f"ALTER TABLE {TABLE_NAME} DROP CONSTRAINT IF EXISTS {CK_USED};")
        op.execute(f"ALTER TABLE {TABLE_NAME} DROP CONSTRAINT IF EXISTS {CK_NEW};")
        return

    with op.batch_alter_table(TABLE_NAME) as batch:
        batch.drop_constraint(CK_USED, type_="check")
        batch.drop_constraint(CK_NEW, type_="check")

"""initial schema

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-03-02
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SITE_TYPE = sa.Enum("STORAGE", "EXIT", name="site_type")
SUPPLY_RISK = sa.Enum("LOW", "MEDIUM", "HIGH", name="supply_risk")
MOVEMENT_TYPE = sa.Enum("IN", "OUT", "TRANSFER", name="movement_type")
PACK_TYPE = sa.Enum("IN", "OUT", name="pack_type")
CONDITION = sa.Enum("NEW", "USED", name="product_condition")
ORDER_STATUS = sa.Enum("PENDING", "COMPLETED", "CANCELLED", name="order_status")

TS = sa.DateTime(timezone=True)


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def upgrade() -> None:
    # ---------- MASTER DATA ----------
    op.create_table(
        "sites",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("type", SITE_TYPE, nullable=False),
        sa.Column("address", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("name", "type", name="uq_site_name_type"),
    )
    op.create_table(
        "suppliers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(64)),
        sa.Column("website", sa.String(500)),
        sa.Column("address", sa.String(500)),
        sa.Column("postal_code", sa.String(20)),
        sa.Column("city", sa.String(128)),
        sa.Column("country", sa.String(128)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("comment", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
    )

    # ---------- TAXONOMY ----------
    for table in ("product_groups", "assembly_types", "assemblies"):
        op.create_table(
            table,
            _id(),
            sa.Column("name", sa.String(200), nullable=False, unique=True),
            sa.Column("description", sa.Text()),
            sa.Column("created_at", TS, nullable=False),
        )
    op.create_table(
        "assembly_type_links",
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "assembly_type_id", sa.String(36), sa.ForeignKey("assembly_types.id", ondelete="CASCADE"), primary_key=True
        ),
    )

    # ---------- PRODUCTS ----------
    op.create_table(
        "products",
        _id(),
        sa.Column("reference", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("qty_per_unit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("supply_risk", SUPPLY_RISK),
        sa.Column("location", sa.String(200)),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("product_groups.id", ondelete="SET NULL")),
        sa.Column("assembly_id", sa.String(36), sa.ForeignKey("assemblies.id", ondelete="SET NULL")),
        sa.Column("comment", sa.Text()),
        sa.Column("image_url", sa.String(1000)),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint("qty_per_unit >= 1", name="ck_product_qty_per_unit_pos"),
    )
    op.create_index("ix_products_group_id", "products", ["group_id"])
    op.create_index("ix_products_assembly_id", "products", ["assembly_id"])

    op.create_table(
        "product_suppliers",
        _id(),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("supplier_ref", sa.String(128)),
        sa.Column("unit_price", sa.Numeric(14, 2)),
        sa.Column("lead_time", sa.String(100)),
        sa.Column("product_url", sa.String(1000)),
        sa.Column("shipping_cost", sa.Numeric(14, 2)),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price_updated_at", TS),
        sa.UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),
        sa.CheckConstraint("unit_price IS NULL OR unit_price >= 0", name="ck_ps_unit_price_nonneg"),
        sa.CheckConstraint("shipping_cost IS NULL OR shipping_cost >= 0", name="ck_ps_shipping_cost_nonneg"),
    )

    # ---------- INVENTORY ----------
    op.create_table(
        "stocks",
        _id(),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("site_id", sa.String(36), sa.ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_new", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quantity_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", TS, nullable=False),
        sa.UniqueConstraint("product_id", "site_id", name="uq_stock_product_site"),
    )
    op.create_index("ix_stocks_site_id", "stocks", ["site_id"])

    # ---------- PROCUREMENT ----------
    op.create_table(
        "orders",
        _id(),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("supplier_id", sa.String(36), sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False),
        sa.Column("order_date", TS, nullable=False),
        sa.Column("expected_date", TS),
        sa.Column("received_date", TS),
        sa.Column("received_qty", sa.Integer()),
        sa.Column("destination_site_id", sa.String(36), sa.ForeignKey("sites.id", ondelete="RESTRICT")),
        sa.Column("responsible", sa.String(200)),
        sa.Column("supplier_ref", sa.String(128)),
        sa.Column("comment", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_qty_pos"),
        sa.CheckConstraint("received_qty IS NULL OR received_qty > 0", name="ck_order_received_qty_pos"),
    )
    op.create_index("ix_orders_product_id", "orders", ["product_id"])
    op.create_index("ix_orders_supplier_id", "orders", ["supplier_id"])
    op.create_index("ix_orders_status_date", "orders", ["status", "order_date"])

    op.create_table(
        "stock_movements",
        _id(),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("type", MOVEMENT_TYPE, nullable=False),
        sa.Column("source_site_id", sa.String(36), sa.ForeignKey("sites.id", ondelete="RESTRICT")),
        sa.Column("target_site_id", sa.String(36), sa.ForeignKey("sites.id", ondelete="RESTRICT")),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("condition", CONDITION, nullable=False),
        sa.Column("movement_date", TS, nullable=False),
        sa.Column("operator", sa.String(200)),
        sa.Column("comment", sa.Text()),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id", ondelete="RESTRICT")),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_order_id", "stock_movements", ["order_id"])
    op.create_index("ix_stock_movements_product_date", "stock_movements", ["product_id", "movement_date"])

    # ---------- PACKS ----------
    op.create_table(
        "packs",
        _id(),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("type", PACK_TYPE, nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_table(
        "pack_items",
        _id(),
        sa.Column("pack_id", sa.String(36), sa.ForeignKey("packs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.String(36), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity > 0", name="ck_pack_item_qty_pos"),
    )
    op.create_index("ix_pack_items_pack_id", "pack_items", ["pack_id"])

    # ---------- READ MODELS ----------
    op.create_table(
        "read_model_versions",
        sa.Column("view", sa.String(64), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", TS, nullable=False),
    )


def downgrade() -> None:
    for table in (
        "read_model_versions",
        "pack_items",
        "packs",
        "stock_movements",
        "orders",
        "stocks",
        "product_suppliers",
        "products",
        "assembly_type_links",
        "assemblies",
        "assembly_types",
        "product_groups",
        "suppliers",
        "sites",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (ORDER_STATUS, CONDITION, PACK_TYPE, MOVEMENT_TYPE, SUPPLY_RISK, SITE_TYPE):
        enum.drop(bind, checkfirst=True)

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Boolean,
    Column,
    ForeignKey,
    Numeric,
    Float,
    Text,
    Enum,
    Table,
    UniqueConstraint,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gestock.app.db.base import Base, UUIDPk, utcnow
from gestock.app.db.models.core_types import (
    SiteType,
    SupplyRisk,
    MovementType,
    PackType,
    Condition,
    OrderStatus,
)

# ---------- MASTER DATA ----------
class Site(UUIDPk, Base):
    __tablename__ = "sites"
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[SiteType] = mapped_column(Enum(SiteType, name="site_type"), default=SiteType.STORAGE, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("name", "type", name="uq_site_name_type"),)


class Supplier(UUIDPk, Base):
    __tablename__ = "suppliers"
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))
    website: Mapped[str | None] = mapped_column(String(500))
    address: Mapped[str | None] = mapped_column(String(500))
    postal_code: Mapped[str | None] = mapped_column(String(20))
    city: Mapped[str | None] = mapped_column(String(128))
    country: Mapped[str | None] = mapped_column(String(128))
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product_suppliers: Mapped[list["ProductSupplier"]] = relationship(
        back_populates="supplier", cascade="all, delete-orphan"
    )


# ---------- TAXONOMY ----------
assembly_type_links = Table(
    "assembly_type_links",
    Base.metadata,
    Column("assembly_id", ForeignKey("assemblies.id", ondelete="CASCADE"), primary_key=True),
    Column("assembly_type_id", ForeignKey("assembly_types.id", ondelete="CASCADE"), primary_key=True),
)


class ProductGroup(UUIDPk, Base):
    __tablename__ = "product_groups"
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AssemblyType(UUIDPk, Base):
    __tablename__ = "assembly_types"
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    assemblies: Mapped[list["Assembly"]] = relationship(
        secondary=assembly_type_links, back_populates="assembly_types"
    )


class Assembly(UUIDPk, Base):
    __tablename__ = "assemblies"
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    assembly_types: Mapped[list[AssemblyType]] = relationship(
        secondary=assembly_type_links, back_populates="assemblies"
    )


# ---------- PRODUCTS ----------
class Product(UUIDPk, Base):
    __tablename__ = "products"
    reference: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    qty_per_unit: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    supply_risk: Mapped[SupplyRisk | None] = mapped_column(Enum(SupplyRisk, name="supply_risk"))
    location: Mapped[str | None] = mapped_column(String(200))
    group_id: Mapped[str | None] = mapped_column(ForeignKey("product_groups.id", ondelete="SET NULL"), index=True)
    assembly_id: Mapped[str | None] = mapped_column(ForeignKey("assemblies.id", ondelete="SET NULL"), index=True)
    assembly_qty_used: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String(1000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    group: Mapped[ProductGroup | None] = relationship()
    assembly: Mapped[Assembly | None] = relationship()
    product_suppliers: Mapped[list["ProductSupplier"]] = relationship(
        back_populates="product", cascade="all, delete-orphan"
    )
    stocks: Mapped[list["Stock"]] = relationship(back_populates="product")

    __table_args__ = (
        CheckConstraint("qty_per_unit >= 1", name="ck_product_qty_per_unit_pos"),
        CheckConstraint("assembly_qty_used >= 1", name="ck_product_assembly_qty_used_pos"),
    )


class ProductSupplier(UUIDPk, Base):
    __tablename__ = "product_suppliers"
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    supplier_id: Mapped[str] = mapped_column(ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False)
    supplier_ref: Mapped[str | None] = mapped_column(String(128))
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    lead_time: Mapped[str | None] = mapped_column(String(100))
    product_url: Mapped[str | None] = mapped_column(String(1000))
    shipping_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    product: Mapped[Product] = relationship(back_populates="product_suppliers")
    supplier: Mapped[Supplier] = relationship(back_populates="product_suppliers")

    __table_args__ = (
        UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),
        # un seul fournisseur principal par produit
        Index(
            "uq_product_supplier_primary",
            "product_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary = 1"),
        ),
        CheckConstraint("unit_price IS NULL OR unit_price >= 0", name="ck_ps_unit_price_nonneg"),
        CheckConstraint("shipping_cost IS NULL OR shipping_cost >= 0", name="ck_ps_shipping_cost_nonneg"),
    )


# ---------- INVENTORY ----------
class Stock(UUIDPk, Base):
    __tablename__ = "stocks"
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    site_id: Mapped[str] = mapped_column(ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False, index=True)

    quantity_new: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    product: Mapped[Product] = relationship(back_populates="stocks")
    site: Mapped[Site] = relationship()

    __table_args__ = (
        UniqueConstraint("product_id", "site_id", name="uq_stock_product_site"),
        CheckConstraint("quantity_new >= 0", name="ck_stock_quantity_new_nonneg"),
        CheckConstraint("quantity_used >= 0", name="ck_stock_quantity_used_nonneg"),
    )


class StockMovement(UUIDPk, Base):
    __tablename__ = "stock_movements"

    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    source_site_id: Mapped[str | None] = mapped_column(ForeignKey("sites.id", ondelete="RESTRICT"))
    target_site_id: Mapped[str | None] = mapped_column(ForeignKey("sites.id", ondelete="RESTRICT"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    condition: Mapped[Condition] = mapped_column(Enum(Condition, name="product_condition"), nullable=False)

    movement_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    operator: Mapped[str | None] = mapped_column(String(200))
    comment: Mapped[str | None] = mapped_column(Text)
    order_id: Mapped[str | None] = mapped_column(ForeignKey("orders.id", ondelete="RESTRICT"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()
    source_site: Mapped[Site | None] = relationship(foreign_keys=[source_site_id])
    target_site: Mapped[Site | None] = relationship(foreign_keys=[target_site_id])

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        Index("ix_stock_movements_product_date", "product_id", "movement_date"),
    )


# ---------- PROCUREMENT ----------
class Order(UUIDPk, Base):
    __tablename__ = "orders"
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    supplier_id: Mapped[str] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"), default=OrderStatus.PENDING, nullable=False
    )

    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expected_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_qty: Mapped[int | None] = mapped_column(Integer)
    destination_site_id: Mapped[str | None] = mapped_column(ForeignKey("sites.id", ondelete="RESTRICT"))
    responsible: Mapped[str | None] = mapped_column(String(200))
    supplier_ref: Mapped[str | None] = mapped_column(String(128))
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    product: Mapped[Product] = relationship()
    supplier: Mapped[Supplier] = relationship()
    destination_site: Mapped[Site | None] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_qty_pos"),
        CheckConstraint("received_qty IS NULL OR received_qty > 0", name="ck_order_received_qty_pos"),
        Index("ix_orders_status_date", "status", "order_date"),
    )


# ---------- PACKS ----------
class Pack(UUIDPk, Base):
    __tablename__ = "packs"
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    type: Mapped[PackType] = mapped_column(Enum(PackType, name="pack_type"), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    items: Mapped[list["PackItem"]] = relationship(
        back_populates="pack", cascade="all, delete-orphan", order_by="PackItem.position"
    )


class PackItem(UUIDPk, Base):
    __tablename__ = "pack_items"
    pack_id: Mapped[str] = mapped_column(ForeignKey("packs.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    pack: Mapped[Pack] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_pack_item_qty_pos"),)


# ---------- READ MODELS ----------
class ReadModelVersion(Base):
    __tablename__ = "read_model_versions"
    view: Mapped[str] = mapped_column(String(64), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

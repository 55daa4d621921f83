"""
Dashboard read models. Lecture seule.

Les séries temporelles sont agrégées avec pandas plutôt qu'en SQL : même code
pour PostgreSQL et SQLite (pas de date_trunc côté SQLite).
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from gestock.app.db.base import as_utc, utcnow
from gestock.app.db.models.core_types import MovementType, OrderStatus, SupplyRisk
from gestock.app.db.models.models_v1 import (
    Order,
    Product,
    ProductSupplier,
    Site,
    Stock,
    StockMovement,
    Supplier,
)


def _product_rows(db: Session) -> list[dict]:
    """One row per product: totals, possible units and primary supplier."""
    totals = {
        pid: (int(new or 0), int(used or 0))
        for pid, new, used in db.execute(
            select(Stock.product_id, func.sum(Stock.quantity_new), func.sum(Stock.quantity_used)).group_by(
                Stock.product_id
            )
        ).all()
    }
    products = db.execute(
        select(Product)
        .execution_options(populate_existing=True)
        .options(
            selectinload(Product.product_suppliers).selectinload(ProductSupplier.supplier),
            selectinload(Product.group),
        )
    ).scalars()

    rows = []
    for p in products:
        new, used = totals.get(p.id, (0, 0))
        primary = next((ps for ps in p.product_suppliers if ps.is_primary), None)
        rows.append(
            {
                "id": p.id,
                "reference": p.reference,
                "description": p.description,
                "group": p.group.name if p.group else None,
                "qtyPerUnit": p.qty_per_unit,
                "supplyRisk": p.supply_risk.value if p.supply_risk else None,
                "totalNew": new,
                "totalUsed": used,
                "total": new + used,
                "possibleUnits": (new + used) // max(p.qty_per_unit, 1),
                "primarySupplier": primary.supplier.name if primary else None,
                "leadTime": primary.lead_time if primary else None,
                "unitPrice": float(primary.unit_price) if primary and primary.unit_price is not None else None,
            }
        )
    return rows


def stats(db: Session, now: datetime | None = None) -> dict:
    now = now or utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    rows = _product_rows(db)

    total_new = sum(r["totalNew"] for r in rows)
    total_used = sum(r["totalUsed"] for r in rows)
    completed_this_month = sum(
        1
        for received in db.execute(
            select(Order.received_date).where(Order.status == OrderStatus.COMPLETED)
        ).scalars()
        if received is not None and as_utc(received) >= month_start
    )

    return {
        "totalProducts": len(rows),
        "totalSuppliers": db.scalar(select(func.count(Supplier.id))) or 0,
        "totalSites": db.scalar(select(func.count(Site.id))) or 0,
        "pendingOrders": db.scalar(
            select(func.count(Order.id)).where(Order.status == OrderStatus.PENDING)
        )
        or 0,
        "completedOrdersThisMonth": completed_this_month,
        "totalItems": total_new + total_used,
        "totalStockNew": total_new,
        "totalStockUsed": total_used,
        "totalStockValue": round(sum(r["total"] * (r["unitPrice"] or 0) for r in rows), 2),
        "highRiskProducts": sum(1 for r in rows if r["supplyRisk"] == SupplyRisk.HIGH.value),
        "totalPossibleUnits": sum(r["possibleUnits"] for r in rows),
    }


def recent_movements(db: Session, limit: int = 10) -> list[StockMovement]:
    return list(
        db.execute(
            select(StockMovement)
            .order_by(StockMovement.movement_date.desc(), StockMovement.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def pending_orders(db: Session, limit: int = 10) -> list[Order]:
    # sans date prévue en dernier
    return list(
        db.execute(
            select(Order)
            .where(Order.status == OrderStatus.PENDING)
            .order_by(Order.expected_date.is_(None), Order.expected_date, Order.order_date)
            .limit(limit)
        )
        .scalars()
        .all()
    )


def low_stock_alerts(db: Session, threshold: int) -> list[dict]:
    alerts = [
        {k: v for k, v in r.items() if k != "unitPrice"}
        for r in _product_rows(db)
        if r["possibleUnits"] <= threshold
    ]
    return sorted(alerts, key=lambda r: (r["possibleUnits"], r["reference"]))


def top_products(db: Session, limit: int = 10) -> list[dict]:
    rows = sorted(_product_rows(db), key=lambda r: (-r["total"], r["reference"]))[:limit]
    return [
        {
            "reference": r["reference"],
            "group": r["group"] or "",
            "totalNew": r["totalNew"],
            "totalUsed": r["totalUsed"],
            "total": r["total"],
        }
        for r in rows
    ]


def movements_by_day(db: Session, days: int = 14, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
    records = [
        {"date": as_utc(d).date(), "type": MovementType(t).value, "n": 1}
        for d, t in db.execute(
            select(StockMovement.movement_date, StockMovement.type).where(StockMovement.movement_date >= start)
        ).all()
    ]

    calendar = pd.date_range(start=start.date(), periods=days, freq="D").date
    types = [t.value for t in MovementType]
    if records:
        df = pd.DataFrame(records)
        table = df.pivot_table(index="date", columns="type", values="n", aggfunc="sum", fill_value=0)
    else:
        table = pd.DataFrame(columns=types)
    table = table.reindex(index=calendar, columns=types, fill_value=0).fillna(0)

    return [
        {"date": day.isoformat(), **{t: int(row[t]) for t in types}}
        for day, row in table.iterrows()
    ]


def stock_by_site(db: Session) -> list[dict]:
    rows = db.execute(
        select(
            Site.name,
            func.coalesce(func.sum(Stock.quantity_new), 0),
            func.coalesce(func.sum(Stock.quantity_used), 0),
            func.count(Stock.id),
        )
        .join(Stock, Stock.site_id == Site.id)
        .where((Stock.quantity_new > 0) | (Stock.quantity_used > 0))
        .group_by(Site.id, Site.name)
        .order_by(Site.name)
    ).all()
    return [
        {"name": name, "totalNew": int(new), "totalUsed": int(used), "productCount": int(count)}
        for name, new, used, count in rows
    ]


def orders_by_month(db: Session, months: int = 6, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    periods = pd.period_range(end=pd.Period(now.strftime("%Y-%m"), freq="M"), periods=months, freq="M")
    start = periods[0].start_time.to_pydatetime().replace(tzinfo=now.tzinfo)

    records = [
        {
            "month": pd.Period(as_utc(d).strftime("%Y-%m"), freq="M"),
            "status": OrderStatus(s).value.lower(),
            "quantity": q,
        }
        for d, s, q in db.execute(
            select(Order.order_date, Order.status, Order.quantity).where(Order.order_date >= start)
        ).all()
    ]

    statuses = [s.value.lower() for s in OrderStatus]
    out = []
    df = pd.DataFrame(records, columns=["month", "status", "quantity"])
    for period in periods:
        month = df[df["month"] == period]
        counts = month["status"].value_counts()
        out.append(
            {
                "month": str(period),
                **{s: int(counts.get(s, 0)) for s in statuses},
                "totalQty": int(month["quantity"].sum()),
            }
        )
    return out

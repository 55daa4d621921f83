"""
Read-model dependency declarations.

Each write operation lists the read views it makes stale. Writes bump one
version counter per view inside the caller's transaction; clients poll
`GET /read-models` (or read the `X-Invalidates` header) instead of busting
their caches by hand.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from gestock.app.db.base import utcnow
from gestock.app.db.models.models_v1 import ReadModelVersion

VIEWS = (
    "sites",
    "suppliers",
    "products",
    "taxonomy",
    "stocks",
    "movements",
    "orders",
    "packs",
    "dashboard",
)

AFFECTS: dict[str, tuple[str, ...]] = {
    "site.write": ("sites", "dashboard"),
    "supplier.write": ("suppliers", "products"),
    "product.write": ("products", "dashboard"),
    "product_supplier.write": ("products", "suppliers", "dashboard"),
    "taxonomy.write": ("taxonomy", "products"),
    "movement.create": ("movements", "stocks", "products", "dashboard"),
    "order.write": ("orders", "dashboard"),
    "order.receive": ("orders", "movements", "stocks", "products", "dashboard"),
    "pack.write": ("packs",),
    "pack.execute": ("movements", "stocks", "products", "dashboard"),
    "import.run": VIEWS,
}


def affected(operation: str) -> tuple[str, ...]:
    return AFFECTS[operation]


def touch(db: Session, operation: str) -> tuple[str, ...]:
    views = affected(operation)
    existing = {
        rm.view: rm
        for rm in db.execute(
            select(ReadModelVersion).where(ReadModelVersion.view.in_(views)).with_for_update()
        ).scalars()
    }
    now = utcnow()
    for view in views:
        rm = existing.get(view)
        if rm is None:
            db.add(ReadModelVersion(view=view, version=1, updated_at=now))
        else:
            rm.version += 1
            rm.updated_at = now
    db.flush()
    return views


def versions(db: Session) -> dict[str, int]:
    current = {view: 0 for view in VIEWS}
    for rm in db.execute(select(ReadModelVersion)).scalars():
        current[rm.view] = rm.version
    return current

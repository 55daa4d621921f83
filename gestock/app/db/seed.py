from __future__ import annotations

from sqlalchemy import select

from gestock.app.core.logging import configure_logging, get_logger
from gestock.app.db.models.core_types import SiteType
from gestock.app.db.models.models_v1 import ReadModelVersion, Site
from gestock.app.db.session import SessionLocal, transaction
from gestock.services.read_models import VIEWS

DEFAULT_SITES = (
    ("Entrepôt principal", SiteType.STORAGE),
    ("Sortie", SiteType.EXIT),
)


def run_seed(db) -> dict[str, int]:
    created = {"sites": 0, "readModels": 0}

    # 1) Sites par défaut (stockage + sortie)
    for name, site_type in DEFAULT_SITES:
        exists = db.scalar(select(Site).where(Site.name == name, Site.type == site_type))
        if not exists:
            db.add(Site(name=name, type=site_type, is_active=True))
            created["sites"] += 1

    # 2) Compteurs de read models à 0
    known = set(db.scalars(select(ReadModelVersion.view)).all())
    for view in VIEWS:
        if view not in known:
            db.add(ReadModelVersion(view=view, version=0))
            created["readModels"] += 1

    db.flush()
    return created


def main() -> None:
    configure_logging()
    db = SessionLocal()
    try:
        with transaction(db):
            created = run_seed(db)
        get_logger(__name__).info("seed_ok", **created)
    finally:
        db.close()


if __name__ == "__main__":
    main()

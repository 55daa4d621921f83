import os
from contextlib import contextmanager

# base en mémoire, jamais la base locale
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEOCODER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "development"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from gestock.app.core.config import reset_settings

reset_settings()

from gestock.app.api.deps import get_db, get_geocoder, get_session_factory
from gestock.app.db.base import Base
from gestock.app.db.models.core_types import Condition, MovementType, SiteType
from gestock.app.db.session import engine
from gestock.app.schemas.movement import MovementCreate
from gestock.app.schemas.product import ProductCreate
from gestock.app.schemas.site import SiteCreate
from gestock.app.schemas.supplier import SupplierCreate
from gestock.services import catalog
from gestock.services.geocoding import NullGeocoder
from gestock.services.movements import create_movement


@pytest.fixture(scope="session", autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    Transaction englobante + SAVEPOINT : les commit() des endpoints ne font
    que relâcher un savepoint, TOUT est rollback à la fin du test.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def client(db_session):
    from gestock.app.main import app

    def _get_db():
        yield db_session

    @contextmanager
    def _shared_session():
        # les tâches de fond écrivent dans la même transaction de test
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_geocoder] = NullGeocoder
    app.dependency_overrides[get_session_factory] = lambda: _shared_session
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


# ---------- Master data ----------
@pytest.fixture
def site_a(db_session):
    return catalog.create_site(db_session, SiteCreate(name="Entrepôt A", type=SiteType.STORAGE))


@pytest.fixture
def site_b(db_session):
    return catalog.create_site(db_session, SiteCreate(name="Entrepôt B", type=SiteType.STORAGE))


@pytest.fixture
def exit_site(db_session):
    return catalog.create_site(db_session, SiteCreate(name="Sortie", type=SiteType.EXIT))


@pytest.fixture
def supplier(db_session):
    return catalog.create_supplier(db_session, SupplierCreate(name="Acme Composants", city="Lyon"))


@pytest.fixture
def product(db_session):
    return catalog.create_product(db_session, ProductCreate(reference="P1", description="Vis M6", qty_per_unit=1))


@pytest.fixture
def product_b(db_session):
    return catalog.create_product(db_session, ProductCreate(reference="P2", description="Écrou M6", qty_per_unit=4))


@pytest.fixture
def move(db_session):
    """move(product, "IN", 10, target=site) -> StockMovement"""

    def _move(product, type, quantity, *, source=None, target=None, condition=Condition.NEW, **extra):
        return create_movement(
            db_session,
            MovementCreate(
                product_id=product.id,
                type=MovementType(type),
                source_site_id=source.id if source else None,
                target_site_id=target.id if target else None,
                quantity=quantity,
                condition=condition,
                **extra,
            ),
        )

    return _move

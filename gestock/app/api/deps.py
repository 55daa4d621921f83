from __future__ import annotations

from typing import Callable, Generator

from fastapi import Query
from sqlalchemy.orm import Session

from gestock.app.db.session import SessionLocal
from gestock.services.geocoding import AddressGeocoder, build_geocoder


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_geocoder() -> AddressGeocoder:
    return build_geocoder()


def get_session_factory() -> Callable[[], Session]:
    """Sessions opened outside the request, e.g. by background tasks."""
    return SessionLocal


class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=10000),
    ):
        self.page = page
        self.limit = limit

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gestock.app.core.config import get_settings


def _enable_sqlite_transactions(engine: Engine) -> None:
    """
    pysqlite gère mal BEGIN/SAVEPOINT : on reprend la main sur les transactions
    (recette SQLAlchemy) et on active les FK.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
        _enable_sqlite_transactions(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


settings = get_settings()
engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Request-level unit of work: commit on success, rollback on any error.

        with transaction(db):
            create_movement(db, payload)
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise

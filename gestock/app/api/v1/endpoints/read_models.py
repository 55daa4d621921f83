from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gestock.app.api.deps import get_db
from gestock.app.api.responses import ok
from gestock.services.read_models import AFFECTS, versions

router = APIRouter(prefix="/read-models")


@router.get("")
def read_model_versions(db: Session = Depends(get_db)):
    """Version counter per read view; a client refetches a view when its counter moves."""
    return ok({"versions": versions(db), "affects": {op: list(views) for op, views in AFFECTS.items()}})

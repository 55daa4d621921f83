from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from gestock.app.api.deps import get_db
from gestock.app.core.config import get_settings

router = APIRouter(prefix="/health")


@router.get("")
def health(db: Session = Depends(get_db)):
    settings = get_settings()
    db.execute(text("SELECT 1"))
    return {
        "success": True,
        "data": {"status": "ok", "app": settings.APP_NAME, "version": settings.VERSION, "database": "ok"},
    }

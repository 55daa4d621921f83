from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from sqlalchemy.orm import Session

from gestock.app.api.deps import get_db
from gestock.app.api.responses import invalidates, ok
from gestock.app.core.config import get_settings
from gestock.app.core.exceptions import ValidationError
from gestock.app.db.session import transaction
from gestock.services import reconciliation

router = APIRouter()


def _read_upload(file: UploadFile) -> bytes:
    limit = get_settings().IMPORT_MAX_UPLOAD_BYTES
    content = file.file.read(limit + 1)
    if len(content) > limit:
        raise ValidationError(f"Fichier trop volumineux (max {limit} octets)", field="file")
    if not content:
        raise ValidationError("Fichier vide", field="file")
    return content


@router.post("/import/preview")
def preview_import(file: UploadFile = File(...)):
    content = _read_upload(file)
    return ok(reconciliation.preview_import(content, file.filename or ""))


@router.post("/import")
def run_import(
    response: Response,
    file: UploadFile = File(...),
    type: str | None = Form(None),
    db: Session = Depends(get_db),
):
    content = _read_upload(file)
    with transaction(db):
        result = reconciliation.run_import(db, content, file.filename or "", entity=type)
    invalidates(response, "import.run")
    created = sum(r["created"] for r in result.values())
    updated = sum(r["updated"] for r in result.values())
    errors = sum(len(r["errors"]) for r in result.values())
    return ok(result, f"Import terminé : {created} créé(s), {updated} mis à jour, {errors} erreur(s)")


@router.get("/export/{entity}")
def export_entity(entity: str, format: str = Query("xlsx"), db: Session = Depends(get_db)):
    content, media_type, filename = reconciliation.export_entity(db, entity, format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

"""Exception handlers: every failure leaves as {success: false, error, code, message, details, context}."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gestock.app.core.exceptions import GestockError
from gestock.app.core.logging import get_logger

logger = get_logger(__name__)


def _envelope(
    status_code: int,
    code: str,
    message: str,
    fields: list[dict] | None = None,
    context: dict | None = None,
) -> JSONResponse:
    # error = texte affiché tel quel par le front, details = erreurs par champ
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "code": code,
            "message": message,
            "details": fields or [],
            "context": context or {},
        },
    )


async def gestock_error_handler(request: Request, exc: GestockError) -> JSONResponse:
    log = logger.warning if exc.status_code == 409 else logger.info
    log("request_rejected", path=request.url.path, method=request.method, error=exc.code, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append({"field": ".".join(loc), "message": err.get("msg", "")})
    message = "; ".join(f"{f['field']}: {f['message']}" if f["field"] else f["message"] for f in fields)
    logger.info("request_invalid", path=request.url.path, fields=fields)
    return _envelope(400, "VALIDATION_ERROR", message or "Invalid request", fields)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # course perdue sur une contrainte unique / FK
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return _envelope(409, "CONFLICT", "Constraint violation", context={"reason": str(exc.orig)})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _envelope(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return _envelope(500, "INTERNAL_ERROR", "Internal server error")


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GestockError, gestock_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

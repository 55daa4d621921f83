"""Response envelopes shared by every endpoint."""

from __future__ import annotations

from typing import Any, Iterable

from fastapi import Response

from gestock.app.schemas.common import CamelModel, Pagination
from gestock.services.read_models import affected


def _dump(item: Any) -> Any:
    return item.dump() if isinstance(item, CamelModel) else item


def ok(data: Any = None, message: str | None = None) -> dict:
    if isinstance(data, list):
        data = [_dump(item) for item in data]
    body: dict[str, Any] = {"success": True, "data": _dump(data)}
    if message:
        body["message"] = message
    return body


def paginated(items: Iterable[Any], page: int, limit: int, total: int) -> dict:
    return {
        "success": True,
        "data": [_dump(item) for item in items],
        "pagination": Pagination.build(page, limit, total).dump(),
    }


def invalidates(response: Response, operation: str) -> None:
    """Tell the client which read views the write made stale."""
    response.headers["X-Invalidates"] = ",".join(affected(operation))

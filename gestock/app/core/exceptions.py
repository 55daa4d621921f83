"""
Domain exceptions.

Every rejected mutation raises one of these; the API layer maps them to the
`{success: false, error, code, message, details, context}` envelope, where
`error` is the readable message and `details` the list of field errors.
"""

from __future__ import annotations

from typing import Any


class GestockError(Exception):
    """Base exception for all domain errors."""

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def field_errors(self) -> list[dict[str, str]]:
        field = self.details.get("field")
        return [{"field": field, "message": self.message}] if field else []

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "message": self.message,
            "details": self.field_errors(),
            "context": self.details,
        }


class ValidationError(GestockError):
    """User input violates a field constraint."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None, **details: Any):
        if field is not None:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)
        self.field = field


class NotFoundError(GestockError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(GestockError):
    """Natural key already taken."""

    status_code = 409

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="CONFLICT", details=details)


class InsufficientStockError(GestockError):
    """An OUT or TRANSFER would drive a stock quantity negative."""

    status_code = 409

    def __init__(
        self,
        *,
        product_id: str,
        product_reference: str | None,
        site_id: str,
        site_name: str | None,
        condition: str,
        available: int,
        requested: int,
    ):
        super().__init__(
            f"Insufficient {condition} stock for {product_reference or product_id} "
            f"at {site_name or site_id}: available={available}, requested={requested}",
            code="INSUFFICIENT_STOCK",
            details={
                "productId": product_id,
                "productReference": product_reference,
                "siteId": site_id,
                "siteName": site_name,
                "condition": condition,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested


class InvalidStateError(GestockError):
    """Transition not allowed from the entity's current state."""

    status_code = 409

    def __init__(self, entity: str, entity_id: str, current: str, action: str):
        super().__init__(
            f"Cannot {action} {entity} {entity_id} in status {current}",
            code="INVALID_STATE",
            details={"entity": entity, "id": entity_id, "status": current, "action": action},
        )


class ReferentialIntegrityError(GestockError):
    """Delete blocked because other rows still reference the entity."""

    status_code = 409

    def __init__(self, entity: str, entity_id: str, references: dict[str, int]):
        refs = ", ".join(f"{name}={count}" for name, count in references.items())
        super().__init__(
            f"{entity} {entity_id} is still referenced ({refs})",
            code="REFERENTIAL_INTEGRITY",
            details={"entity": entity, "id": entity_id, "references": references},
        )


class RowImportError(GestockError):
    """Per-row import failure; collected by the reconciliation, never fatal."""

    def __init__(self, sheet: str, row_number: int, message: str):
        super().__init__(
            f"{sheet} ligne {row_number}: {message}",
            code="ROW_IMPORT_ERROR",
            details={"sheet": sheet, "row": row_number},
        )


class GeocodingError(GestockError):
    """Advisory only: a supplier save never fails because of it."""

    def __init__(self, address: str, reason: str):
        super().__init__(
            f"Geocoding failed for '{address}': {reason}",
            code="GEOCODING_FAILURE",
            details={"address": address, "reason": reason},
        )

"""Errors surfaced by the inventory components to their callers."""

from __future__ import annotations

from typing import Optional


class InventoryError(RuntimeError):
    """Base class; carries a stable code and the HTTP status it maps to."""

    code = "INVENTORY_ERROR"
    status_code = 400

    def __init__(self, message: str, *, entity: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity


class ValidationError(InventoryError):
    """Malformed, missing or zero-after-rounding input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(InventoryError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(InventoryError):
    """A uniqueness rule was violated, e.g. a duplicate SKU."""

    code = "CONFLICT"
    status_code = 409


class BomLineRequiredError(InventoryError):
    """Strict mode refused to consume a material that is not on the BOM."""

    code = "BOM_LINE_REQUIRED"
    status_code = 400


class StorageUnavailableError(InventoryError):
    """The atomic unit of work could not be committed."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503


class PermissionDeniedError(InventoryError):
    code = "FORBIDDEN"
    status_code = 403


__all__ = [
    "InventoryError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "BomLineRequiredError",
    "StorageUnavailableError",
    "PermissionDeniedError",
]

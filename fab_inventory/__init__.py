"""Material inventory ledger for a fabrication shop.

This package tracks raw materials (sheet, bar stock, filler wire, ...),
records every stock movement in an append-only ledger, raises low-stock and
negative-stock alerts, and ties material consumption to per-order bills of
materials under a configurable level of strictness.
"""

from .domain import (
    BomLine,
    ConsumptionMode,
    InventoryPreset,
    InventorySettings,
    InventoryTransaction,
    Material,
    Notification,
    OrderBom,
    TransactionType,
)
from .errors import (
    BomLineRequiredError,
    ConflictError,
    InventoryError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from .services import InventoryService

__all__ = [
    "BomLine",
    "ConsumptionMode",
    "InventoryPreset",
    "InventorySettings",
    "InventoryTransaction",
    "Material",
    "Notification",
    "OrderBom",
    "TransactionType",
    "BomLineRequiredError",
    "ConflictError",
    "InventoryError",
    "NotFoundError",
    "StorageUnavailableError",
    "ValidationError",
    "InventoryService",
]

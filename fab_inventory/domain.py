"""Core data structures for the fabrication shop inventory ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

# Free-form material attributes (gauge, alloy, finish, ...).
SpecValue = Union[str, int, float, None]
SpecMap = Dict[str, SpecValue]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryPreset(str, Enum):
    """Named bundles of inventory discipline selectable by an administrator."""

    LIGHTWEIGHT = "LIGHTWEIGHT"
    ASSISTED = "ASSISTED"
    STRICT = "STRICT"


class ConsumptionMode(str, Enum):
    """How strictly material consumption is tied to an order's BOM."""

    NO_BOM = "NO_BOM"
    BOM_ASSISTED = "BOM_ASSISTED"
    BOM_STRICT = "BOM_STRICT"


PRESET_CONSUMPTION_MODES: Dict[InventoryPreset, ConsumptionMode] = {
    InventoryPreset.LIGHTWEIGHT: ConsumptionMode.NO_BOM,
    InventoryPreset.ASSISTED: ConsumptionMode.BOM_ASSISTED,
    InventoryPreset.STRICT: ConsumptionMode.BOM_STRICT,
}


class TransactionType(str, Enum):
    """Kinds of stock movement recorded in the ledger."""

    RECEIPT = "RECEIPT"
    ADJUSTMENT = "ADJUSTMENT"
    CONSUME = "CONSUME"


class BomStatus(str, Enum):
    DRAFT = "draft"
    LOCKED = "locked"
    COMPLETED = "completed"


class NotificationType(str, Enum):
    LOW_STOCK = "inventory_low_stock"
    NEGATIVE_STOCK = "inventory_negative"


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------
@dataclass(slots=True)
class QtyPrecision:
    max_decimals: int = 3


@dataclass(slots=True)
class LowStockRules:
    enable_reorder_point: bool = True
    alert_on_negative: bool = True
    alert_cooldown_minutes: float = 1440


@dataclass(slots=True)
class AlertRecipients:
    """Who receives low-stock notifications."""

    roles: List[str] = field(default_factory=lambda: ["admin", "supervisor"])
    include_order_owner: bool = True
    order_owner_field_priority: List[str] = field(
        default_factory=lambda: ["ownerUserId", "createdBy", "salesRepUserId"]
    )
    fallback_to_roles_only: bool = True


@dataclass(slots=True)
class InventoryPermissions:
    """Extra rights granted to the production role."""

    production_can_consume: bool = True
    production_can_receive: bool = False
    production_can_adjust: bool = False


@dataclass(slots=True)
class InventorySettings:
    """The single active inventory configuration record."""

    id: str
    preset: InventoryPreset = InventoryPreset.ASSISTED
    consumption_mode: ConsumptionMode = ConsumptionMode.BOM_ASSISTED
    qty_precision: QtyPrecision = field(default_factory=QtyPrecision)
    low_stock_rules: LowStockRules = field(default_factory=LowStockRules)
    alert_recipients: AlertRecipients = field(default_factory=AlertRecipients)
    permissions: InventoryPermissions = field(default_factory=InventoryPermissions)
    updated_at: datetime = field(default_factory=utcnow)


# ----------------------------------------------------------------------
# Materials and ledger
# ----------------------------------------------------------------------
@dataclass(slots=True)
class LowStockState:
    """Cached alert state maintained by the low-stock evaluator."""

    is_low: bool = False
    last_alert_at: Optional[datetime] = None
    last_alert_qty: Optional[float] = None


@dataclass(slots=True)
class Material:
    """A trackable raw material such as sheet, bar stock or filler wire."""

    id: str
    sku: str
    name: str
    unit: str
    category: str = ""
    spec: SpecMap = field(default_factory=dict)
    is_active: bool = True
    default_unit_cost: float = 0.0
    avg_unit_cost: float = 0.0
    on_hand_qty: float = 0.0
    reorder_point_qty: float = 0.0
    reorder_target_qty: float = 0.0
    low_stock: LowStockState = field(default_factory=LowStockState)
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class TransactionRef:
    """Provenance of a stock movement."""

    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None


@dataclass(frozen=True, slots=True)
class InventoryTransaction:
    """Immutable ledger entry; balance_after is the on-hand snapshot after it."""

    id: str
    material_id: str
    type: TransactionType
    qty_delta: float
    balance_after: float
    at: datetime
    unit_cost: Optional[float] = None
    notes: str = ""
    ref: TransactionRef = field(default_factory=TransactionRef)
    actor_user_id: Optional[str] = None


# ----------------------------------------------------------------------
# Order BOMs
# ----------------------------------------------------------------------
@dataclass(slots=True)
class MaterialSnapshot:
    """Material identity as it was when the BOM line was planned."""

    sku: str = ""
    name: str = ""
    unit: str = ""
    spec: SpecMap = field(default_factory=dict)


@dataclass(slots=True)
class BomLine:
    line_id: str
    material_id: str
    material_snapshot: MaterialSnapshot = field(default_factory=MaterialSnapshot)
    planned_qty: float = 0.0
    consumed_qty: float = 0.0
    scrap_pct: float = 0.0
    notes: str = ""
    unplanned: bool = False
    consumption_txn_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class OrderBom:
    """Planned and consumed materials for one production order."""

    order_id: str
    order_number: str = ""
    status: BomStatus = BomStatus.DRAFT
    lines: List[BomLine] = field(default_factory=list)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def find_line(self, material_id: str) -> Optional[BomLine]:
        for line in self.lines:
            if line.material_id == material_id:
                return line
        return None


# ----------------------------------------------------------------------
# Collaborator records
# ----------------------------------------------------------------------
@dataclass(slots=True)
class ProductionOrder:
    """Minimal order record owned by the order workflow."""

    id: str
    order_number: str
    customer: str = ""
    due_date: Optional[date] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class Notification:
    id: str
    type: NotificationType
    title: str
    message: str
    roles: List[str]
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    order_number: Optional[str] = None
    read_by: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


__all__ = [
    "SpecValue",
    "SpecMap",
    "utcnow",
    "InventoryPreset",
    "ConsumptionMode",
    "PRESET_CONSUMPTION_MODES",
    "TransactionType",
    "BomStatus",
    "NotificationType",
    "QtyPrecision",
    "LowStockRules",
    "AlertRecipients",
    "InventoryPermissions",
    "InventorySettings",
    "LowStockState",
    "Material",
    "TransactionRef",
    "InventoryTransaction",
    "MaterialSnapshot",
    "BomLine",
    "OrderBom",
    "ProductionOrder",
    "Notification",
]

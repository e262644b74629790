"""Pydantic request schemas and response presenters for the inventory API.

Request bodies use the camelCase field names of the public API and are
dumped to snake_case dicts for the service layer. Leaf values that the
services normalise themselves (settings, quantities) are typed loosely so
malformed values reach the normalisation rules instead of failing here.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..consumption import ConsumptionResult
from ..domain import (
    InventorySettings,
    InventoryTransaction,
    Material,
    Notification,
    OrderBom,
)
from ..ledger import StockMovement
from ..materials import MaterialPage

SpecField = Dict[str, Union[str, int, float, None]]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class QtyPrecisionPatch(ApiModel):
    max_decimals: Any = None


class LowStockRulesPatch(ApiModel):
    enable_reorder_point: Any = None
    alert_on_negative: Any = None
    alert_cooldown_minutes: Any = None


class AlertRecipientsPatch(ApiModel):
    roles: Any = None
    include_order_owner: Any = None
    order_owner_field_priority: Any = None
    fallback_to_roles_only: Any = None


class PermissionsPatch(ApiModel):
    production_can_consume: Any = None
    production_can_receive: Any = None
    production_can_adjust: Any = None


class SettingsPatchRequest(ApiModel):
    preset: Any = None
    consumption_mode: Any = None
    qty_precision: Optional[QtyPrecisionPatch] = None
    low_stock_rules: Optional[LowStockRulesPatch] = None
    alert_recipients: Optional[AlertRecipientsPatch] = None
    permissions: Optional[PermissionsPatch] = None

    @field_validator(
        "qty_precision", "low_stock_rules", "alert_recipients", "permissions", mode="before"
    )
    @classmethod
    def drop_malformed_section(cls, value: Any) -> Any:
        # Non-object sections are ignored like any other invalid settings value.
        return value if isinstance(value, Mapping) else None


# ---------------------------------------------------------------------------
# Materials and stock movements
# ---------------------------------------------------------------------------
class CreateMaterialRequest(ApiModel):
    sku: str = ""
    name: str = ""
    unit: str = ""
    category: str = ""
    spec: SpecField = Field(default_factory=dict)
    is_active: bool = True
    default_unit_cost: Any = 0
    reorder_point_qty: Any = 0
    reorder_target_qty: Any = 0


class UpdateMaterialRequest(ApiModel):
    sku: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    spec: Optional[SpecField] = None
    is_active: Optional[bool] = None
    default_unit_cost: Any = None
    reorder_point_qty: Any = None
    reorder_target_qty: Any = None


class ReceiveStockRequest(ApiModel):
    qty: Any = None
    unit_cost: Any = None
    notes: str = ""


class AdjustStockRequest(ApiModel):
    qty_delta: Any = None
    notes: str = ""


# ---------------------------------------------------------------------------
# Order BOM and consumption
# ---------------------------------------------------------------------------
class MaterialSnapshotIn(ApiModel):
    sku: str = ""
    name: str = ""
    unit: str = ""
    spec: SpecField = Field(default_factory=dict)


class BomLineIn(ApiModel):
    material_id: str
    line_id: Optional[str] = None
    material_snapshot: Optional[MaterialSnapshotIn] = None
    planned_qty: Any = 0
    consumed_qty: Any = 0
    scrap_pct: Any = 0
    notes: str = ""
    unplanned: bool = False
    consumption_txn_ids: List[str] = Field(default_factory=list)


class BomPatchRequest(ApiModel):
    status: Optional[str] = None
    lines: Optional[List[BomLineIn]] = None


class ConsumeItemIn(ApiModel):
    material_id: str
    qty: Any = None
    unit_cost: Any = None
    notes: str = ""


class ConsumeRequest(ApiModel):
    items: List[ConsumeItemIn] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Presenters
# ---------------------------------------------------------------------------
def _camel(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel(key) if isinstance(key, str) else key: _camel(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_camel(item) for item in value]
    return value


def present(record: Any) -> Dict[str, Any]:
    """Dataclass record -> camelCase dict (spec maps keep their own keys)."""

    data = asdict(record)
    spec = data.pop("spec", None)
    snapshots = [line.pop("material_snapshot") for line in data.get("lines", [])]
    out = _camel(data)
    if spec is not None:
        out["spec"] = spec
    for line, snapshot in zip(out.get("lines", []), snapshots):
        line["materialSnapshot"] = snapshot
    return out


def present_settings(settings: InventorySettings) -> Dict[str, Any]:
    return present(settings)


def present_material(material: Material) -> Dict[str, Any]:
    return present(material)


def present_transaction(transaction: InventoryTransaction) -> Dict[str, Any]:
    return present(transaction)


def present_bom(bom: Optional[OrderBom]) -> Optional[Dict[str, Any]]:
    return present(bom) if bom is not None else None


def present_notification(notification: Notification) -> Dict[str, Any]:
    return present(notification)


def present_movement(movement: StockMovement) -> Dict[str, Any]:
    return {
        "material": present_material(movement.material),
        "transaction": present_transaction(movement.transaction),
    }


def present_material_page(page: MaterialPage) -> Dict[str, Any]:
    return {
        "items": [present_material(material) for material in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
    }


def present_consumption(result: ConsumptionResult) -> Dict[str, Any]:
    return {
        "orderId": result.order_id,
        "orderNumber": result.order_number,
        "mode": result.mode,
        "items": [present_movement(movement) for movement in result.items],
        "bom": present_bom(result.bom),
    }

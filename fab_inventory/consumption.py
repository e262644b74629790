"""Consumption of material by production orders under the configured BOM mode."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union
from uuid import uuid4

import structlog

from .bom import OrderBomManager, snapshot_of
from .domain import (
    BomLine,
    ConsumptionMode,
    InventorySettings,
    OrderBom,
    TransactionRef,
    TransactionType,
    utcnow,
)
from .errors import BomLineRequiredError, ValidationError
from .ledger import StockLedger, StockMovement
from .materials import MaterialRegistry
from .orders import OrderDirectory, OrderRef
from .repository import InventoryStore
from .settings import SettingsStore
from .utils.quantities import round_quantity

logger = structlog.get_logger(__name__)

AUTO_LINE_NOTE = "Auto-added from consumption"


@dataclass(slots=True)
class ConsumptionItem:
    material_id: str
    qty: Any
    unit_cost: Any = None
    notes: str = ""


@dataclass(slots=True)
class ConsumptionResult:
    """What a consumption batch applied, plus the BOM as it now stands."""

    order_id: str
    order_number: str
    mode: ConsumptionMode
    items: List[StockMovement] = field(default_factory=list)
    bom: Optional[OrderBom] = None


def _coerce_item(raw: Union[ConsumptionItem, Mapping[str, Any]]) -> ConsumptionItem:
    if isinstance(raw, ConsumptionItem):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError("Each consumption item must be an object", entity="consumption")
    material_id = str(raw.get("material_id") or "").strip()
    if not material_id:
        raise ValidationError("Every consumption item needs a materialId", entity="consumption")
    return ConsumptionItem(
        material_id=material_id,
        qty=raw.get("qty"),
        unit_cost=raw.get("unit_cost"),
        notes=str(raw.get("notes") or ""),
    )


class ConsumptionOrchestrator:
    """Consumes material for an order, one item at a time.

    Each item is its own unit of work (ledger apply plus BOM line update);
    when an item fails, items applied before it in the same batch stay
    applied and the error propagates. The order lock is held for the whole
    batch so BOM line updates from concurrent batches do not interleave.

    ========  =====================  ======================
    mode      BOM line absent        BOM line present
    ========  =====================  ======================
    NO_BOM    consume, BOM ignored   consume, BOM ignored
    ASSISTED  add unplanned line     increment line
    STRICT    BomLineRequiredError   increment line
    ========  =====================  ======================
    """

    def __init__(
        self,
        store: InventoryStore,
        settings: SettingsStore,
        materials: MaterialRegistry,
        ledger: StockLedger,
        boms: OrderBomManager,
        orders: OrderDirectory,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._materials = materials
        self._ledger = ledger
        self._boms = boms
        self._orders = orders
        self._clock = clock

    def consume_for_order(
        self,
        order_id: str,
        items: Sequence[Union[ConsumptionItem, Mapping[str, Any]]],
        *,
        actor_user_id: Optional[str] = None,
    ) -> ConsumptionResult:
        if not items:
            raise ValidationError("items[] is required", entity="consumption")
        settings = self._settings.get_settings()
        order = self._orders.get_order(order_id)
        mode = settings.consumption_mode
        result = ConsumptionResult(
            order_id=order.id, order_number=order.order_number, mode=mode
        )

        with self._boms.locks.hold(order.id):
            if mode is not ConsumptionMode.NO_BOM:
                self._boms.get_or_create_order_bom(
                    order.id, order.order_number, actor_user_id=actor_user_id
                )
            for position, raw in enumerate(items):
                try:
                    movement = self._consume_item(
                        order, _coerce_item(raw), settings, actor_user_id
                    )
                except Exception:
                    logger.warning(
                        "Consumption batch stopped",
                        order_id=order.id,
                        failed_item=position,
                        applied_items=len(result.items),
                    )
                    raise
                result.items.append(movement)
            result.bom = self._boms.get_order_bom(order.id)
        return result

    def _consume_item(
        self,
        order: OrderRef,
        item: ConsumptionItem,
        settings: InventorySettings,
        actor_user_id: Optional[str],
    ) -> StockMovement:
        mode = settings.consumption_mode
        qty = round_quantity(item.qty, settings.qty_precision.max_decimals)
        if not qty or qty <= 0:
            raise ValidationError("qty must be a positive number", entity="consumption")
        material = self._materials.get_material_by_id(item.material_id)

        uses_bom = mode is not ConsumptionMode.NO_BOM
        if mode is ConsumptionMode.BOM_STRICT:
            bom = self._boms.get_order_bom(order.id)
            if bom is None or bom.find_line(material.id) is None:
                raise BomLineRequiredError(
                    f"BOM line missing for material {material.sku}; "
                    "add it to the BOM before consuming.",
                    entity="bom",
                )

        with self._ledger.locks.hold(material.id), self._store.atomic():
            movement = self._ledger.apply_stock_transaction(
                material.id,
                TransactionType.CONSUME,
                -qty,
                unit_cost=item.unit_cost,
                notes=item.notes,
                ref=TransactionRef(
                    entity_type="order",
                    order_id=order.id,
                    order_number=order.order_number,
                ),
                actor_user_id=actor_user_id,
                settings=settings,
            )
            if uses_bom:
                self._record_on_bom(order, movement, qty, settings, actor_user_id)

        logger.info(
            "Material consumed for order",
            order_id=order.id,
            order_number=order.order_number,
            material_id=material.id,
            qty=qty,
            mode=mode.value,
        )
        return movement

    def _record_on_bom(
        self,
        order: OrderRef,
        movement: StockMovement,
        qty: float,
        settings: InventorySettings,
        actor_user_id: Optional[str],
    ) -> None:
        bom = self._boms.get_or_create_order_bom(
            order.id, order.order_number, actor_user_id=actor_user_id
        )
        material = movement.material
        transaction_id = movement.transaction.id
        line = bom.find_line(material.id)
        if line is None:
            bom.lines.append(
                BomLine(
                    line_id=str(uuid4()),
                    material_id=material.id,
                    material_snapshot=snapshot_of(material),
                    planned_qty=0.0,
                    consumed_qty=qty,
                    unplanned=True,
                    notes=AUTO_LINE_NOTE,
                    consumption_txn_ids=[transaction_id],
                )
            )
        else:
            line.consumed_qty = round_quantity(
                line.consumed_qty + qty, settings.qty_precision.max_decimals
            )
            line.consumption_txn_ids.append(transaction_id)
        bom.updated_by = actor_user_id
        bom.updated_at = self._clock()
        self._store.order_boms.upsert(order.id, bom)


__all__ = ["ConsumptionOrchestrator", "ConsumptionItem", "ConsumptionResult"]

"""Service facade exposing the inventory use-cases to clients."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union
from uuid import uuid4

import structlog

from .alerts import LowStockEvaluator
from .bom import OrderBomManager
from .consumption import ConsumptionItem, ConsumptionOrchestrator, ConsumptionResult
from .domain import (
    InventorySettings,
    InventoryTransaction,
    Material,
    OrderBom,
    ProductionOrder,
    TransactionRef,
    TransactionType,
    utcnow,
)
from .errors import ValidationError
from .ledger import StockLedger, StockMovement
from .materials import MaterialPage, MaterialRegistry
from .notifications import NotificationInbox, NotificationPort
from .orders import OrderDirectory, RepositoryOrderDirectory
from .repository import InMemoryStore, InventoryStore
from .settings import SettingsStore
from .utils.locks import KeyedLocks

logger = structlog.get_logger(__name__)


class InventoryService:
    """Facade that wires the inventory components around one store.

    Without arguments everything runs in memory, notifications land in a
    ``NotificationInbox`` and orders are looked up in the store's own
    ``orders`` repository.
    """

    def __init__(
        self,
        store: Optional[InventoryStore] = None,
        *,
        notifier: Optional[NotificationPort] = None,
        orders: Optional[OrderDirectory] = None,
        evaluator: Optional[LowStockEvaluator] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store or InMemoryStore()
        self.clock = clock
        self.inbox = NotificationInbox(self.store)
        self.notifier = notifier or self.inbox
        self.order_directory = orders or RepositoryOrderDirectory(self.store.orders)
        material_locks = KeyedLocks()
        self.settings_store = SettingsStore(self.store, clock=clock)
        self.materials = MaterialRegistry(self.store, locks=material_locks, clock=clock)
        self.ledger = StockLedger(
            self.store,
            self.settings_store,
            self.notifier,
            evaluator=evaluator or LowStockEvaluator(clock=clock),
            locks=material_locks,
            clock=clock,
        )
        self.boms = OrderBomManager(self.store, self.order_directory, clock=clock)
        self.consumption = ConsumptionOrchestrator(
            self.store,
            self.settings_store,
            self.materials,
            self.ledger,
            self.boms,
            self.order_directory,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_settings(self) -> InventorySettings:
        return self.settings_store.get_settings()

    def update_settings(
        self, patch: Mapping[str, Any], *, actor_user_id: Optional[str] = None
    ) -> InventorySettings:
        return self.settings_store.update_settings(patch, actor_user_id=actor_user_id)

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------
    def create_material(self, sku: str, name: str, unit: str, **fields: Any) -> Material:
        return self.materials.create_material(sku, name, unit, **fields)

    def update_material(self, material_id: str, patch: Mapping[str, Any]) -> Material:
        return self.materials.update_material(material_id, patch)

    def get_material(self, material_id: str) -> Material:
        return self.materials.get_material_by_id(material_id)

    def list_materials(
        self, *, q: str = "", low_only: bool = False, limit: Any = 50, page: Any = 0
    ) -> MaterialPage:
        return self.materials.list_materials(q=q, low_only=low_only, limit=limit, page=page)

    # ------------------------------------------------------------------
    # Ledger and stock movements
    # ------------------------------------------------------------------
    def apply_stock_transaction(
        self,
        material_id: str,
        transaction_type: Union[TransactionType, str],
        qty_delta: Any,
        *,
        unit_cost: Any = None,
        notes: str = "",
        ref: Optional[TransactionRef] = None,
        actor_user_id: Optional[str] = None,
    ) -> StockMovement:
        return self.ledger.apply_stock_transaction(
            material_id,
            transaction_type,
            qty_delta,
            unit_cost=unit_cost,
            notes=notes,
            ref=ref,
            actor_user_id=actor_user_id,
        )

    def receive_stock(self, material_id: str, qty: Any, **kwargs: Any) -> StockMovement:
        return self.ledger.receive_stock(material_id, qty, **kwargs)

    def adjust_stock(self, material_id: str, qty_delta: Any, **kwargs: Any) -> StockMovement:
        return self.ledger.adjust_stock(material_id, qty_delta, **kwargs)

    def get_material_ledger(
        self, material_id: str, *, limit: Any = 200
    ) -> List[InventoryTransaction]:
        return self.ledger.get_material_ledger(material_id, limit=limit)

    # ------------------------------------------------------------------
    # Orders, BOMs and consumption
    # ------------------------------------------------------------------
    def register_order(
        self,
        order_number: str,
        *,
        customer: str = "",
        due_date: Optional[date] = None,
    ) -> ProductionOrder:
        """Record an order locally when no external order workflow is wired in."""

        order_number = str(order_number or "").strip()
        if not order_number:
            raise ValidationError("orderNumber is required", entity="order")
        order = ProductionOrder(
            id=str(uuid4()),
            order_number=order_number,
            customer=customer,
            due_date=due_date,
            created_at=self.clock(),
        )
        self.store.orders.add(order.id, order)
        logger.info("Order registered", order_id=order.id, order_number=order_number)
        return order

    def get_order_bom(self, order_id: str) -> Optional[OrderBom]:
        return self.boms.get_order_bom(order_id)

    def upsert_order_bom(
        self,
        order_id: str,
        patch: Mapping[str, Any],
        *,
        actor_user_id: Optional[str] = None,
    ) -> OrderBom:
        return self.boms.upsert_order_bom(order_id, patch, actor_user_id=actor_user_id)

    def consume_for_order(
        self,
        order_id: str,
        items: Sequence[Union[ConsumptionItem, Mapping[str, Any]]],
        *,
        actor_user_id: Optional[str] = None,
    ) -> ConsumptionResult:
        return self.consumption.consume_for_order(
            order_id, items, actor_user_id=actor_user_id
        )


__all__ = ["InventoryService"]

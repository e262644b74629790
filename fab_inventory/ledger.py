"""Transaction ledger: the single primitive that changes stock on hand."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, List, Optional, Union
from uuid import uuid4

import structlog

from .alerts import LowStockEvaluator
from .domain import (
    InventorySettings,
    InventoryTransaction,
    Material,
    TransactionRef,
    TransactionType,
    utcnow,
)
from .errors import NotFoundError, ValidationError
from .notifications import NotificationPort, dispatch_safely
from .repository import InventoryStore, RecordNotFoundError
from .settings import SettingsStore
from .utils.locks import KeyedLocks
from .utils.quantities import round_quantity, to_number

logger = structlog.get_logger(__name__)

DEFAULT_LEDGER_LIMIT = 200
MAX_LEDGER_LIMIT = 500


@dataclass(slots=True)
class StockMovement:
    """Outcome of one applied transaction."""

    material: Material
    transaction: InventoryTransaction


class StockLedger:
    """Applies stock transactions atomically and serves a material's history.

    Every apply holds the material's lock and runs inside one unit of work:
    balance update, ledger row and alert state commit together or not at
    all. Alert notifications are sent only after that commit.
    """

    def __init__(
        self,
        store: InventoryStore,
        settings: SettingsStore,
        notifier: NotificationPort,
        *,
        evaluator: Optional[LowStockEvaluator] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._notifier = notifier
        self._clock = clock
        self._evaluator = evaluator or LowStockEvaluator(clock=clock)
        self.locks = locks or KeyedLocks()

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
        settings: Optional[InventorySettings] = None,
    ) -> StockMovement:
        delta = to_number(qty_delta)
        if delta is None or delta == 0:
            raise ValidationError("qtyDelta must be a non-zero number", entity="transaction")
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown transaction type {transaction_type!r}", entity="transaction"
            ) from exc
        cost: Optional[float] = None
        if unit_cost is not None:
            cost = to_number(unit_cost)
            if cost is None:
                raise ValidationError("unitCost must be a number", entity="transaction")

        settings = settings or self._settings.get_settings()
        decimals = settings.qty_precision.max_decimals
        rounded_delta = round_quantity(delta, decimals)
        if not rounded_delta:
            raise ValidationError("qtyDelta is invalid after rounding", entity="transaction")
        ref = ref or TransactionRef()
        if material_id not in self._store.materials:
            raise NotFoundError(f"Material {material_id!r} not found", entity="material")

        with self.locks.hold(material_id), self._store.atomic():
            material = self._load_material(material_id)
            now = self._clock()
            next_on_hand = round_quantity(material.on_hand_qty + rounded_delta, decimals)
            material.on_hand_qty = next_on_hand
            material.updated_at = now
            self._store.materials.upsert(material.id, material)

            transaction = InventoryTransaction(
                id=str(uuid4()),
                material_id=material.id,
                type=tx_type,
                qty_delta=rounded_delta,
                balance_after=next_on_hand,
                at=now,
                unit_cost=cost,
                notes=str(notes or ""),
                ref=ref,
                actor_user_id=actor_user_id,
            )
            self._store.transactions.add(transaction.id, transaction)

            notification = self._evaluator.evaluate(
                material, settings, order_number=ref.order_number
            )
            self._store.materials.upsert(material.id, material)
            if notification is not None:
                self._store.on_commit(partial(dispatch_safely, self._notifier, notification))

        logger.info(
            "Stock transaction applied",
            material_id=material.id,
            sku=material.sku,
            type=tx_type.value,
            qty_delta=rounded_delta,
            balance_after=next_on_hand,
            order_number=ref.order_number,
        )
        return StockMovement(material=material, transaction=transaction)

    def receive_stock(
        self,
        material_id: str,
        qty: Any,
        *,
        unit_cost: Any = None,
        notes: str = "",
        actor_user_id: Optional[str] = None,
    ) -> StockMovement:
        """Book incoming material; only positive quantities are accepted."""

        quantity = to_number(qty)
        if quantity is None or quantity <= 0:
            raise ValidationError("qty must be a positive number", entity="transaction")
        return self.apply_stock_transaction(
            material_id,
            TransactionType.RECEIPT,
            quantity,
            unit_cost=unit_cost,
            notes=notes,
            ref=TransactionRef(entity_type="manual"),
            actor_user_id=actor_user_id,
        )

    def adjust_stock(
        self,
        material_id: str,
        qty_delta: Any,
        *,
        notes: str = "",
        actor_user_id: Optional[str] = None,
    ) -> StockMovement:
        """Correct the balance by a signed, non-zero delta."""

        return self.apply_stock_transaction(
            material_id,
            TransactionType.ADJUSTMENT,
            qty_delta,
            notes=notes,
            ref=TransactionRef(entity_type="manual"),
            actor_user_id=actor_user_id,
        )

    def get_material_ledger(
        self, material_id: str, *, limit: Any = DEFAULT_LEDGER_LIMIT
    ) -> List[InventoryTransaction]:
        """Transactions for one material, newest first."""

        self._load_material(material_id)
        safe_limit = int(min(max(to_number(limit) or DEFAULT_LEDGER_LIMIT, 1), MAX_LEDGER_LIMIT))
        # Reverse insertion order first so equal timestamps stay newest first.
        transactions = list(reversed(self._store.transactions.list_by(material_id)))
        transactions.sort(key=lambda transaction: transaction.at, reverse=True)
        return transactions[:safe_limit]

    def _load_material(self, material_id: str) -> Material:
        try:
            return self._store.materials.get(material_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                f"Material {material_id!r} not found", entity="material"
            ) from exc


__all__ = ["StockLedger", "StockMovement"]

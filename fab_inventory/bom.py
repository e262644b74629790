"""Per-order bills of materials."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional
from uuid import uuid4

import structlog

from .domain import BomLine, BomStatus, Material, MaterialSnapshot, OrderBom, utcnow
from .errors import NotFoundError, ValidationError
from .materials import clean_spec
from .orders import OrderDirectory
from .repository import DuplicateRecordError, InventoryStore, RecordNotFoundError
from .utils.locks import KeyedLocks
from .utils.quantities import to_number

logger = structlog.get_logger(__name__)


def snapshot_of(material: Material) -> MaterialSnapshot:
    return MaterialSnapshot(
        sku=material.sku, name=material.name, unit=material.unit, spec=dict(material.spec)
    )


class OrderBomManager:
    """Keeps one BOM per order, created on first use."""

    def __init__(
        self,
        store: InventoryStore,
        orders: OrderDirectory,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._orders = orders
        self._clock = clock
        self.locks = locks or KeyedLocks()

    def get_order_bom(self, order_id: str) -> Optional[OrderBom]:
        try:
            return self._store.order_boms.get(order_id)
        except RecordNotFoundError:
            return None

    def get_or_create_order_bom(
        self,
        order_id: str,
        order_number: str = "",
        *,
        actor_user_id: Optional[str] = None,
    ) -> OrderBom:
        existing = self.get_order_bom(order_id)
        if existing is not None:
            return existing
        now = self._clock()
        bom = OrderBom(
            order_id=order_id,
            order_number=order_number or "",
            created_by=actor_user_id,
            updated_by=actor_user_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self._store.order_boms.add(order_id, bom)
        except DuplicateRecordError:
            return self._store.order_boms.get(order_id)
        logger.info("Order BOM created", order_id=order_id, order_number=bom.order_number)
        return bom

    def upsert_order_bom(
        self,
        order_id: str,
        patch: Mapping[str, Any],
        *,
        actor_user_id: Optional[str] = None,
    ) -> OrderBom:
        """Set the status and/or replace the whole line list."""

        order = self._orders.get_order(order_id)
        raw_lines = patch.get("lines")
        lines: Optional[List[BomLine]] = None
        if isinstance(raw_lines, (list, tuple)):
            lines = [self._normalize_line(raw) for raw in raw_lines]

        with self.locks.hold(order_id), self._store.atomic():
            bom = self.get_or_create_order_bom(
                order_id, order.order_number, actor_user_id=actor_user_id
            )
            status = patch.get("status")
            if status is not None:
                try:
                    bom.status = BomStatus(status)
                except ValueError:
                    pass
            if lines is not None:
                bom.lines = lines
            bom.updated_by = actor_user_id
            bom.updated_at = self._clock()
            self._store.order_boms.upsert(order_id, bom)
        logger.info(
            "Order BOM saved",
            order_id=order_id,
            status=bom.status.value,
            line_count=len(bom.lines),
            lines_replaced=lines is not None,
        )
        return bom

    def _normalize_line(self, raw: Any) -> BomLine:
        if not isinstance(raw, Mapping):
            raise ValidationError("BOM lines must be objects", entity="bom")
        material_id = str(raw.get("material_id") or "").strip()
        if not material_id:
            raise ValidationError("Every BOM line needs a materialId", entity="bom")
        try:
            material = self._store.materials.get(material_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                f"Material {material_id!r} referenced by the BOM not found", entity="material"
            ) from exc

        snapshot = snapshot_of(material)
        given = raw.get("material_snapshot")
        if isinstance(given, Mapping):
            snapshot = MaterialSnapshot(
                sku=str(given.get("sku") or snapshot.sku),
                name=str(given.get("name") or snapshot.name),
                unit=str(given.get("unit") or snapshot.unit),
                spec=clean_spec(given["spec"]) if "spec" in given else snapshot.spec,
            )
        txn_ids = raw.get("consumption_txn_ids")
        return BomLine(
            line_id=str(raw.get("line_id") or "").strip() or str(uuid4()),
            material_id=material_id,
            material_snapshot=snapshot,
            planned_qty=to_number(raw.get("planned_qty")) or 0.0,
            consumed_qty=to_number(raw.get("consumed_qty")) or 0.0,
            scrap_pct=to_number(raw.get("scrap_pct")) or 0.0,
            notes=str(raw.get("notes") or ""),
            unplanned=bool(raw.get("unplanned")),
            consumption_txn_ids=(
                [str(txn_id) for txn_id in txn_ids if txn_id]
                if isinstance(txn_ids, (list, tuple))
                else []
            ),
        )


__all__ = ["OrderBomManager", "snapshot_of"]

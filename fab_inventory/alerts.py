"""Low-stock and negative-stock alerting with a cooldown window."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

import structlog

from .domain import (
    InventorySettings,
    LowStockState,
    Material,
    Notification,
    NotificationType,
    utcnow,
)
from .utils.quantities import format_quantity, round_quantity

logger = structlog.get_logger(__name__)


class LowStockEvaluator:
    """Decides whether a balance change warrants a stock alert.

    ``evaluate`` runs inside the ledger's unit of work. It refreshes the
    material's cached low-stock state in place and returns the notification
    to send, if any; sending is left to the caller so it can happen after
    the commit.

    While stock stays low, every evaluation outside the cooldown window
    alerts again, so the cooldown doubles as the reminder interval.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    def evaluate(
        self,
        material: Material,
        settings: InventorySettings,
        *,
        order_number: Optional[str] = None,
    ) -> Optional[Notification]:
        rules = settings.low_stock_rules
        decimals = settings.qty_precision.max_decimals
        now = self._clock()

        on_hand = round_quantity(material.on_hand_qty, decimals) or 0.0
        reorder_point = round_quantity(material.reorder_point_qty, decimals) or 0.0
        cooldown = timedelta(minutes=float(rules.alert_cooldown_minutes or 0))

        previous = material.low_stock
        within_cooldown = (
            previous.last_alert_at is not None
            and cooldown > timedelta(0)
            and now - previous.last_alert_at < cooldown
        )
        reorder_rule_active = rules.enable_reorder_point and reorder_point > 0
        is_low = reorder_rule_active and on_hand <= reorder_point
        is_negative = rules.alert_on_negative and on_hand < 0

        material.low_stock = LowStockState(
            is_low=is_low or is_negative,
            last_alert_at=previous.last_alert_at,
            last_alert_qty=previous.last_alert_qty,
        )

        went_negative = is_negative and (
            previous.last_alert_qty is None or previous.last_alert_qty >= 0
        )
        should_alert = not within_cooldown and (
            went_negative or is_low or (is_negative and previous.is_low)
        )
        if not should_alert:
            if within_cooldown and (is_low or is_negative):
                logger.info(
                    "Low stock alert suppressed by cooldown",
                    material_id=material.id,
                    sku=material.sku,
                    on_hand=on_hand,
                    last_alert_at=previous.last_alert_at.isoformat(),
                )
            return None

        parts: List[str] = [
            f"{material.name} ({material.sku})",
            f"On hand: {format_quantity(on_hand)} {material.unit}",
        ]
        if reorder_rule_active:
            parts.append(f"Reorder point: {format_quantity(reorder_point)} {material.unit}")
        if order_number:
            parts.append(f"Related order: {order_number}")

        notification = Notification(
            id=str(uuid4()),
            type=NotificationType.NEGATIVE_STOCK if is_negative else NotificationType.LOW_STOCK,
            title=(
                f"Negative inventory: {material.sku}"
                if is_negative
                else f"Low stock: {material.sku}"
            ),
            message=" | ".join(parts),
            roles=list(settings.alert_recipients.roles),
            entity_type="material",
            entity_id=material.id,
            order_number=order_number,
            created_at=now,
        )
        material.low_stock.last_alert_at = now
        material.low_stock.last_alert_qty = on_hand
        logger.info(
            "Low stock alert raised",
            material_id=material.id,
            sku=material.sku,
            on_hand=on_hand,
            negative=is_negative,
        )
        return notification


__all__ = ["LowStockEvaluator"]

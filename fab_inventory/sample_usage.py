"""Demonstration script for the fabrication shop inventory ledger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pprint import pprint

from . import BomLineRequiredError, InventoryService
from .notifications import LoggingNotifier
from .utils.logging import configure_logging


class StepClock:
    """Clock advanced by hand so the cooldown window is visible."""

    def __init__(self) -> None:
        self.now = datetime(2024, 3, 4, 7, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def main() -> None:
    configure_logging("INFO")
    clock = StepClock()
    inventory = InventoryService(clock=clock)
    inventory.inbox.subscribe(LoggingNotifier().create_notification)

    # Master data
    inventory.update_settings({"low_stock_rules": {"alert_cooldown_minutes": 60}})
    flat_bar = inventory.create_material(
        "SKU-100",
        "Flat bar S235 40x8",
        "m",
        category="Bar stock",
        spec={"grade": "S235", "widthMm": 40, "thicknessMm": 8},
        reorder_point_qty=5,
        reorder_target_qty=20,
    )
    plate = inventory.create_material(
        "SKU-200", "Plate S355 10 mm", "kg", category="Plate", reorder_point_qty=50
    )
    order = inventory.register_order("WO-1042", customer="Northside Trailers")

    # Opening stock, then consumption through the reorder point
    inventory.receive_stock(flat_bar.id, 10, unit_cost=6.4, notes="Delivery note 8812")
    clock.advance(hours=1)
    result = inventory.consume_for_order(order.id, [{"material_id": flat_bar.id, "qty": 6}])
    print("After consuming 6 m:", result.items[0].material.on_hand_qty)

    # Inside the cooldown the balance moves but nobody is alerted again
    clock.advance(minutes=30)
    inventory.consume_for_order(order.id, [{"material_id": flat_bar.id, "qty": 1}])
    clock.advance(minutes=60)
    movement = inventory.receive_stock(flat_bar.id, 10)
    print("After restocking:", movement.material.on_hand_qty, movement.material.low_stock)

    print("\nAlerts for supervisors:")
    for notification in inventory.inbox.list_for_role("supervisor")["items"]:
        print(f"- {notification.title}: {notification.message}")

    print("\nBOM after assisted consumption:")
    pprint(inventory.get_order_bom(order.id))

    # Strict mode refuses material that is not planned on the BOM
    inventory.update_settings({"preset": "STRICT"})
    inventory.receive_stock(plate.id, 120)
    try:
        inventory.consume_for_order(order.id, [{"material_id": plate.id, "qty": 35}])
    except BomLineRequiredError as exc:
        print("\nRejected:", exc.message)

    print("\nLedger for SKU-100 (newest first):")
    for transaction in inventory.get_material_ledger(flat_bar.id):
        print(
            f"{transaction.at:%H:%M} {transaction.type.value:<10} "
            f"{transaction.qty_delta:>7} -> {transaction.balance_after}"
        )


if __name__ == "__main__":
    main()

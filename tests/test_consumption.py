import pytest

from fab_inventory.consumption import AUTO_LINE_NOTE, ConsumptionItem
from fab_inventory.domain import ConsumptionMode, TransactionType
from fab_inventory.errors import BomLineRequiredError, NotFoundError, ValidationError


@pytest.fixture
def stocked(service, flat_bar):
    service.receive_stock(flat_bar.id, 50)
    return flat_bar


class TestAssistedMode:
    def test_unplanned_material_gets_auto_line(self, service, order, stocked):
        result = service.consume_for_order(
            order.id, [{"material_id": stocked.id, "qty": 4}], actor_user_id="op-3"
        )

        assert result.mode is ConsumptionMode.BOM_ASSISTED
        assert result.order_number == "WO-1042"
        transaction = result.items[0].transaction
        assert transaction.type is TransactionType.CONSUME
        assert transaction.qty_delta == -4
        assert transaction.ref.order_id == order.id
        assert transaction.ref.order_number == "WO-1042"
        assert transaction.actor_user_id == "op-3"

        lines = result.bom.lines
        assert len(lines) == 1
        assert lines[0].unplanned is True
        assert lines[0].planned_qty == 0
        assert lines[0].consumed_qty == 4
        assert lines[0].notes == AUTO_LINE_NOTE
        assert lines[0].consumption_txn_ids == [transaction.id]
        assert lines[0].material_snapshot.sku == "SKU-100"

    def test_planned_line_is_incremented(self, service, order, stocked):
        service.upsert_order_bom(
            order.id, {"lines": [{"material_id": stocked.id, "planned_qty": 10}]}
        )

        service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": 2.5}])
        result = service.consume_for_order(
            order.id, [ConsumptionItem(material_id=stocked.id, qty=1.25)]
        )

        line = result.bom.lines[0]
        assert len(result.bom.lines) == 1
        assert line.unplanned is False
        assert line.consumed_qty == 3.75
        assert len(line.consumption_txn_ids) == 2
        assert service.get_material(stocked.id).on_hand_qty == 46.25

    def test_bom_line_tracks_ledger(self, service, order, stocked):
        for qty in (1, 2, 3):
            service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": qty}])

        line = service.get_order_bom(order.id).find_line(stocked.id)
        consumed = [
            tx
            for tx in service.get_material_ledger(stocked.id)
            if tx.type is TransactionType.CONSUME
        ]
        assert sorted(line.consumption_txn_ids) == sorted(tx.id for tx in consumed)
        assert line.consumed_qty == -sum(tx.qty_delta for tx in consumed)


class TestStrictMode:
    def test_missing_line_blocks_consumption(self, service, order, stocked):
        service.update_settings({"preset": "STRICT"})

        with pytest.raises(BomLineRequiredError):
            service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": 3}])

        assert service.get_material(stocked.id).on_hand_qty == 50
        assert len(service.get_material_ledger(stocked.id)) == 1

    def test_planned_line_allows_consumption(self, service, order, stocked):
        service.update_settings({"preset": "STRICT"})
        service.upsert_order_bom(order.id, {"lines": [{"material_id": stocked.id}]})

        result = service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": 3}])

        assert result.bom.lines[0].consumed_qty == 3
        assert service.get_material(stocked.id).on_hand_qty == 47


class TestNoBomMode:
    def test_bom_is_left_alone(self, service, order, stocked):
        service.update_settings({"preset": "LIGHTWEIGHT"})

        result = service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": 3}])

        assert result.mode is ConsumptionMode.NO_BOM
        assert result.bom is None
        assert service.get_order_bom(order.id) is None
        assert service.get_material(stocked.id).on_hand_qty == 47


class TestBatchBehaviour:
    def test_earlier_items_stay_applied_when_later_item_fails(
        self, service, order, stocked
    ):
        with pytest.raises(NotFoundError):
            service.consume_for_order(
                order.id,
                [
                    {"material_id": stocked.id, "qty": 5},
                    {"material_id": "missing", "qty": 1},
                    {"material_id": stocked.id, "qty": 5},
                ],
            )

        assert service.get_material(stocked.id).on_hand_qty == 45
        assert service.get_order_bom(order.id).lines[0].consumed_qty == 5

    def test_empty_items_rejected(self, service, order):
        with pytest.raises(ValidationError):
            service.consume_for_order(order.id, [])

    @pytest.mark.parametrize("qty", [0, -2, "lots", 0.0001])
    def test_non_positive_qty_rejected(self, service, order, stocked, qty):
        with pytest.raises(ValidationError):
            service.consume_for_order(order.id, [{"material_id": stocked.id, "qty": qty}])

        assert service.get_material(stocked.id).on_hand_qty == 50

    def test_unknown_order_rejected(self, service, stocked):
        with pytest.raises(NotFoundError):
            service.consume_for_order("missing", [{"material_id": stocked.id, "qty": 1}])

    def test_consumption_can_go_negative(self, service, order, flat_bar, notifier):
        result = service.consume_for_order(order.id, [{"material_id": flat_bar.id, "qty": 2}])

        assert result.items[0].material.on_hand_qty == -2
        assert notifier.sent[-1].message.endswith("Related order: WO-1042")

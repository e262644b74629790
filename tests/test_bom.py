import pytest

from fab_inventory.domain import BomStatus
from fab_inventory.errors import NotFoundError, ValidationError


class TestOrderBom:
    def test_no_bom_until_first_use(self, service, order):
        assert service.get_order_bom(order.id) is None

    def test_upsert_creates_and_replaces_lines(self, service, order, flat_bar, clock):
        bom = service.upsert_order_bom(
            order.id,
            {"lines": [{"material_id": flat_bar.id, "planned_qty": "12.5", "scrap_pct": 5}]},
            actor_user_id="u-1",
        )

        assert bom.order_number == "WO-1042"
        assert bom.status is BomStatus.DRAFT
        assert bom.created_by == "u-1"
        line = bom.lines[0]
        assert line.planned_qty == 12.5
        assert line.scrap_pct == 5
        assert line.material_snapshot.sku == "SKU-100"
        assert line.line_id

        plate = service.create_material("SKU-200", "Plate", "kg")
        clock.advance(minutes=1)
        replaced = service.upsert_order_bom(
            order.id, {"lines": [{"material_id": plate.id, "planned_qty": 40}]}
        )

        assert [line.material_id for line in replaced.lines] == [plate.id]
        assert replaced.updated_at == clock.now
        assert len(service.store.order_boms) == 1

    def test_status_only_patch_keeps_lines(self, service, order, flat_bar):
        service.upsert_order_bom(order.id, {"lines": [{"material_id": flat_bar.id}]})

        bom = service.upsert_order_bom(order.id, {"status": "locked"})

        assert bom.status is BomStatus.LOCKED
        assert len(bom.lines) == 1

    def test_invalid_status_is_ignored(self, service, order):
        bom = service.upsert_order_bom(order.id, {"status": "shipped"})

        assert bom.status is BomStatus.DRAFT

    def test_given_snapshot_overrides_current_material(self, service, order, flat_bar):
        bom = service.upsert_order_bom(
            order.id,
            {
                "lines": [
                    {
                        "material_id": flat_bar.id,
                        "material_snapshot": {"name": "Flat bar (as quoted)", "sku": ""},
                    }
                ]
            },
        )

        snapshot = bom.lines[0].material_snapshot
        assert snapshot.name == "Flat bar (as quoted)"
        assert snapshot.sku == "SKU-100"

    def test_line_without_material_rejected(self, service, order):
        with pytest.raises(ValidationError):
            service.upsert_order_bom(order.id, {"lines": [{"planned_qty": 3}]})

    def test_line_with_unknown_material_rejected(self, service, order):
        with pytest.raises(NotFoundError):
            service.upsert_order_bom(order.id, {"lines": [{"material_id": "missing"}]})

        assert service.get_order_bom(order.id) is None

    def test_unknown_order_rejected(self, service):
        with pytest.raises(NotFoundError):
            service.upsert_order_bom("missing", {"status": "locked"})

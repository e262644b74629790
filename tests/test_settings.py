from fab_inventory.domain import ConsumptionMode, InventoryPreset
from fab_inventory.settings import SETTINGS_ID, normalize_settings_patch


class TestSettingsDefaults:
    def test_first_read_creates_defaults(self, service):
        settings = service.get_settings()

        assert settings.id == SETTINGS_ID
        assert settings.preset is InventoryPreset.ASSISTED
        assert settings.consumption_mode is ConsumptionMode.BOM_ASSISTED
        assert settings.qty_precision.max_decimals == 3
        assert settings.low_stock_rules.enable_reorder_point is True
        assert settings.low_stock_rules.alert_on_negative is True
        assert settings.low_stock_rules.alert_cooldown_minutes == 1440
        assert settings.alert_recipients.roles == ["admin", "supervisor"]
        assert settings.permissions.production_can_consume is True
        assert settings.permissions.production_can_receive is False
        assert settings.permissions.production_can_adjust is False

    def test_single_record_is_reused(self, service):
        service.get_settings()
        service.get_settings()

        assert len(service.store.settings) == 1


class TestUpdateSettings:
    def test_preset_derives_consumption_mode(self, service):
        settings = service.update_settings({"preset": "STRICT"})

        assert settings.preset is InventoryPreset.STRICT
        assert settings.consumption_mode is ConsumptionMode.BOM_STRICT

    def test_explicit_mode_wins_over_preset(self, service):
        settings = service.update_settings(
            {"preset": "STRICT", "consumption_mode": "NO_BOM"}
        )

        assert settings.preset is InventoryPreset.STRICT
        assert settings.consumption_mode is ConsumptionMode.NO_BOM

    def test_partial_patch_keeps_other_fields(self, service):
        service.update_settings({"low_stock_rules": {"alert_on_negative": False}})
        settings = service.update_settings({"qty_precision": {"max_decimals": 2}})

        assert settings.low_stock_rules.alert_on_negative is False
        assert settings.low_stock_rules.enable_reorder_point is True
        assert settings.qty_precision.max_decimals == 2

    def test_invalid_values_are_ignored(self, service):
        settings = service.update_settings(
            {
                "preset": "EXTREME",
                "consumption_mode": 7,
                "low_stock_rules": {"enable_reorder_point": "yes"},
                "permissions": {"production_can_adjust": 1},
            }
        )

        assert settings.preset is InventoryPreset.ASSISTED
        assert settings.consumption_mode is ConsumptionMode.BOM_ASSISTED
        assert settings.low_stock_rules.enable_reorder_point is True
        assert settings.permissions.production_can_adjust is False

    def test_numbers_are_clamped(self, service):
        settings = service.update_settings(
            {
                "qty_precision": {"max_decimals": 12},
                "low_stock_rules": {"alert_cooldown_minutes": 10**9},
            }
        )

        assert settings.qty_precision.max_decimals == 8
        assert settings.low_stock_rules.alert_cooldown_minutes == 43200

    def test_update_stamps_time(self, service, clock):
        service.get_settings()
        clock.advance(minutes=5)

        settings = service.update_settings({"preset": "LIGHTWEIGHT"})

        assert settings.updated_at == clock.now
        assert service.get_settings().consumption_mode is ConsumptionMode.NO_BOM


def test_normalize_drops_unknown_sections():
    assert normalize_settings_patch({"colour": "blue", "qty_precision": "3"}) == {}


def test_normalize_keeps_recipient_lists():
    patch = normalize_settings_patch(
        {"alert_recipients": {"roles": ["admin", None, "buyer"], "include_order_owner": False}}
    )

    assert patch == {
        "alert_recipients": {"include_order_owner": False, "roles": ["admin", "buyer"]}
    }

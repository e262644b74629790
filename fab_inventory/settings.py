"""Settings store holding the single active inventory configuration."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Mapping, Optional, Type, TypeVar

import structlog

from .domain import (
    PRESET_CONSUMPTION_MODES,
    ConsumptionMode,
    InventoryPreset,
    InventorySettings,
    utcnow,
)
from .repository import DuplicateRecordError, InventoryStore, RecordNotFoundError
from .utils.quantities import MAX_DECIMALS, clamp_number

logger = structlog.get_logger(__name__)

SETTINGS_ID = "active"
MAX_COOLDOWN_MINUTES = 60 * 24 * 30

E = TypeVar("E", InventoryPreset, ConsumptionMode)

_BOOLEAN_FIELDS = {
    "low_stock_rules": ("enable_reorder_point", "alert_on_negative"),
    "alert_recipients": ("include_order_owner", "fallback_to_roles_only"),
    "permissions": (
        "production_can_consume",
        "production_can_receive",
        "production_can_adjust",
    ),
}


def _parse_enum(enum_type: Type[E], value: Any) -> Optional[E]:
    try:
        return enum_type(value)
    except (TypeError, ValueError):
        return None


def _string_list(value: Any) -> Optional[list]:
    if not isinstance(value, (list, tuple)):
        return None
    return [str(item) for item in value if item is not None and str(item)]


def normalize_settings_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only recognised, well-formed values from a settings patch.

    The result mirrors the settings layout (nested sections as dicts). When
    a preset is given without a consumption mode, the mode follows the preset.
    """

    out: Dict[str, Any] = {}
    preset = _parse_enum(InventoryPreset, patch.get("preset"))
    if preset is not None:
        out["preset"] = preset
    mode = _parse_enum(ConsumptionMode, patch.get("consumption_mode"))
    if mode is not None:
        out["consumption_mode"] = mode

    precision = patch.get("qty_precision")
    if isinstance(precision, Mapping) and "max_decimals" in precision:
        decimals = clamp_number(precision["max_decimals"], minimum=0, maximum=MAX_DECIMALS)
        if decimals is not None:
            out["qty_precision"] = {"max_decimals": int(decimals)}

    for section, flags in _BOOLEAN_FIELDS.items():
        raw = patch.get(section)
        if not isinstance(raw, Mapping):
            continue
        values = out.setdefault(section, {})
        for flag in flags:
            if isinstance(raw.get(flag), bool):
                values[flag] = raw[flag]
        if section == "low_stock_rules" and "alert_cooldown_minutes" in raw:
            minutes = clamp_number(
                raw["alert_cooldown_minutes"], minimum=0, maximum=MAX_COOLDOWN_MINUTES
            )
            if minutes is not None:
                values["alert_cooldown_minutes"] = minutes
        if section == "alert_recipients":
            for list_field in ("roles", "order_owner_field_priority"):
                items = _string_list(raw.get(list_field))
                if items is not None:
                    values[list_field] = items

    if "preset" in out and "consumption_mode" not in out:
        out["consumption_mode"] = PRESET_CONSUMPTION_MODES[out["preset"]]
    return out


class SettingsStore:
    """Lazily initialised singleton settings with partial-patch updates."""

    def __init__(
        self, store: InventoryStore, *, clock: Callable[[], Any] = utcnow
    ) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()

    def get_settings(self) -> InventorySettings:
        try:
            return self._store.settings.get(SETTINGS_ID)
        except RecordNotFoundError:
            pass
        settings = InventorySettings(id=SETTINGS_ID, updated_at=self._clock())
        try:
            self._store.settings.add(SETTINGS_ID, settings)
        except DuplicateRecordError:
            # Another caller initialised it first.
            return self._store.settings.get(SETTINGS_ID)
        logger.info(
            "Inventory settings initialised",
            preset=settings.preset.value,
            consumption_mode=settings.consumption_mode.value,
        )
        return settings

    def update_settings(
        self, patch: Mapping[str, Any], *, actor_user_id: Optional[str] = None
    ) -> InventorySettings:
        normalized = normalize_settings_patch(patch or {})
        with self._lock:
            settings = self.get_settings()
            if "preset" in normalized:
                settings.preset = normalized["preset"]
            if "consumption_mode" in normalized:
                settings.consumption_mode = normalized["consumption_mode"]
            sections = {
                "qty_precision": settings.qty_precision,
                "low_stock_rules": settings.low_stock_rules,
                "alert_recipients": settings.alert_recipients,
                "permissions": settings.permissions,
            }
            for name, target in sections.items():
                for key, value in normalized.get(name, {}).items():
                    setattr(target, key, value)
            settings.updated_at = self._clock()
            self._store.settings.upsert(SETTINGS_ID, settings)
        logger.info(
            "Inventory settings updated",
            actor_user_id=actor_user_id,
            fields=sorted(normalized),
            consumption_mode=settings.consumption_mode.value,
        )
        return settings


__all__ = ["SETTINGS_ID", "SettingsStore", "normalize_settings_patch"]

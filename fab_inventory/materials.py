"""Material registry: catalogue of trackable raw materials."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional
from uuid import uuid4

import structlog

from .domain import Material, SpecMap, utcnow
from .errors import ConflictError, NotFoundError, ValidationError
from .repository import DuplicateRecordError, InventoryStore, RecordNotFoundError
from .utils.locks import KeyedLocks
from .utils.quantities import to_number

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(slots=True)
class MaterialPage:
    """One page of a material listing."""

    items: List[Material]
    total: int
    page: int
    limit: int


def clean_spec(value: Any) -> SpecMap:
    """Keep string keys with scalar values; anything else is dropped."""

    if not isinstance(value, Mapping):
        return {}
    spec: SpecMap = {}
    for key, item in value.items():
        if isinstance(item, bool):
            continue
        if item is None or isinstance(item, (str, int, float)):
            spec[str(key)] = item
    return spec


def _text(value: Any) -> str:
    return str(value if value is not None else "").strip()


def _amount(value: Any) -> float:
    return to_number(value) or 0.0


class MaterialRegistry:
    """Creates, edits and looks up materials.

    ``on_hand_qty`` and ``low_stock`` belong to the ledger; edits here never
    touch them, and take the same per-material lock as the ledger so a
    metadata edit cannot overwrite a concurrent balance change.
    """

    def __init__(
        self,
        store: InventoryStore,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def create_material(
        self,
        sku: str,
        name: str,
        unit: str,
        *,
        category: str = "",
        spec: Optional[Mapping[str, Any]] = None,
        is_active: bool = True,
        default_unit_cost: Any = 0.0,
        reorder_point_qty: Any = 0.0,
        reorder_target_qty: Any = 0.0,
        actor_user_id: Optional[str] = None,
    ) -> Material:
        sku, name, unit = _text(sku), _text(name), _text(unit)
        if not sku or not name or not unit:
            raise ValidationError(
                "Missing required fields: sku, name, unit", entity="material"
            )
        now = self._clock()
        material = Material(
            id=str(uuid4()),
            sku=sku,
            name=name,
            unit=unit,
            category=_text(category),
            spec=clean_spec(spec),
            is_active=is_active is not False,
            default_unit_cost=_amount(default_unit_cost),
            reorder_point_qty=_amount(reorder_point_qty),
            reorder_target_qty=_amount(reorder_target_qty),
            created_by=actor_user_id,
            created_at=now,
            updated_at=now,
        )
        with self._store.atomic():
            self._claim_sku(sku, material.id)
            self._store.materials.add(material.id, material)
        logger.info("Material created", material_id=material.id, sku=sku)
        return material

    def update_material(self, material_id: str, patch: Mapping[str, Any]) -> Material:
        if material_id not in self._store.materials:
            raise NotFoundError(f"Material {material_id!r} not found", entity="material")
        with self._locks.hold(material_id), self._store.atomic():
            material = self.get_material_by_id(material_id)
            previous_sku = material.sku
            if "sku" in patch:
                material.sku = _text(patch["sku"])
            if "name" in patch:
                material.name = _text(patch["name"])
            if "category" in patch:
                material.category = _text(patch["category"])
            if "unit" in patch:
                material.unit = _text(patch["unit"])
            if "spec" in patch:
                material.spec = clean_spec(patch["spec"])
            if "is_active" in patch:
                material.is_active = bool(patch["is_active"])
            for field_name in ("default_unit_cost", "reorder_point_qty", "reorder_target_qty"):
                if field_name in patch:
                    setattr(material, field_name, _amount(patch[field_name]))
            if not material.sku or not material.name or not material.unit:
                raise ValidationError(
                    "sku, name and unit cannot be empty", entity="material"
                )
            if material.sku != previous_sku:
                self._claim_sku(material.sku, material.id)
                self._store.sku_index.remove(previous_sku)
            material.updated_at = self._clock()
            self._store.materials.upsert(material.id, material)
        logger.info("Material updated", material_id=material.id, fields=sorted(patch))
        return material

    def get_material_by_id(self, material_id: str) -> Material:
        try:
            return self._store.materials.get(material_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                f"Material {material_id!r} not found", entity="material"
            ) from exc

    def list_materials(
        self,
        *,
        q: str = "",
        low_only: bool = False,
        limit: Any = DEFAULT_PAGE_SIZE,
        page: Any = 0,
    ) -> MaterialPage:
        safe_limit = int(min(max(to_number(limit) or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE))
        safe_page = int(max(to_number(page) or 0, 0))
        terms = _text(q).lower().split()

        materials = self._store.materials.list()
        if terms:
            materials = [
                material
                for material in materials
                if any(
                    term in material.name.lower() or term in material.sku.lower()
                    for term in terms
                )
            ]
        if low_only:
            materials = [material for material in materials if material.low_stock.is_low]
        materials.sort(key=lambda material: material.updated_at, reverse=True)
        start = safe_page * safe_limit
        return MaterialPage(
            items=materials[start : start + safe_limit],
            total=len(materials),
            page=safe_page,
            limit=safe_limit,
        )

    def _claim_sku(self, sku: str, material_id: str) -> None:
        try:
            self._store.sku_index.add(sku, material_id)
        except DuplicateRecordError as exc:
            raise ConflictError(f"SKU {sku!r} already exists", entity="material") from exc


__all__ = ["MaterialRegistry", "MaterialPage", "clean_spec"]

"""FastAPI-based web interface for the inventory ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, FastAPI, Form, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from ..config import AppConfig, get_config
from ..errors import InventoryError, PermissionDeniedError, ValidationError
from ..services import InventoryService
from ..storage import InventoryDatabase
from ..utils.logging import configure_logging
from .schemas import (
    AdjustStockRequest,
    BomPatchRequest,
    ConsumeRequest,
    CreateMaterialRequest,
    ReceiveStockRequest,
    SettingsPatchRequest,
    UpdateMaterialRequest,
    present_bom,
    present_consumption,
    present_material,
    present_material_page,
    present_movement,
    present_notification,
    present_settings,
    present_transaction,
)

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

ADMIN = "admin"
SUPERVISOR = "supervisor"
SALES = "sales"
PRODUCTION = "production"
READ_ROLES = (ADMIN, SUPERVISOR, SALES, PRODUCTION)


@dataclass(frozen=True, slots=True)
class Actor:
    """Caller identity as stamped by the authenticating gateway."""

    role: str
    user_id: Optional[str] = None


def require_roles(*roles: str) -> Callable[..., Actor]:
    def dependency(
        x_user_role: str = Header(default=""),
        x_user_id: Optional[str] = Header(default=None),
    ) -> Actor:
        role = x_user_role.strip().lower()
        if role not in roles:
            raise PermissionDeniedError(
                f"Role {role or 'anonymous'!r} may not perform this action", entity="role"
            )
        return Actor(role=role, user_id=x_user_id)

    return dependency


def ensure_production_permission(service: InventoryService, actor: Actor, flag: str) -> None:
    """The production role needs the matching permission flag from settings."""

    if actor.role != PRODUCTION:
        return
    if not getattr(service.get_settings().permissions, flag):
        raise PermissionDeniedError(
            "Production is not permitted to perform this stock movement", entity="permissions"
        )


def get_service(request: Request) -> InventoryService:
    return request.app.state.inventory_service


def error_body(code: str, message: str, entity: Optional[str] = None) -> dict:
    return {"ok": False, "error": {"code": code, "message": message, "entity": entity}}


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        if exc.status_code >= 500:
            logger.error(
                "Inventory request failed",
                path=request.url.path,
                code=exc.code,
                exc_info=exc,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message, exc.entity),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return JSONResponse(
            status_code=400,
            content=error_body(
                ValidationError.code, "Invalid request: " + ", ".join(fields), "request"
            ),
        )


def build_api_router() -> APIRouter:
    router = APIRouter(prefix="/api/inventory", tags=["inventory"])

    # Settings (admin)
    @router.get("/settings")
    def read_settings(
        actor: Actor = Depends(require_roles(ADMIN)),
        service: InventoryService = Depends(get_service),
    ):
        return {"ok": True, "data": present_settings(service.get_settings())}

    @router.patch("/settings")
    def patch_settings(
        body: SettingsPatchRequest,
        actor: Actor = Depends(require_roles(ADMIN)),
        service: InventoryService = Depends(get_service),
    ):
        settings = service.update_settings(body.to_patch(), actor_user_id=actor.user_id)
        return {"ok": True, "data": present_settings(settings)}

    # Materials
    @router.get("/materials")
    def list_materials(
        q: str = "",
        low_only: bool = Query(False, alias="lowOnly"),
        limit: int = 50,
        page: int = 0,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        result = service.list_materials(q=q, low_only=low_only, limit=limit, page=page)
        return {"ok": True, "data": present_material_page(result)}

    @router.post("/materials", status_code=201)
    def create_material(
        body: CreateMaterialRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR)),
        service: InventoryService = Depends(get_service),
    ):
        fields = body.model_dump()
        material = service.create_material(
            fields.pop("sku"),
            fields.pop("name"),
            fields.pop("unit"),
            actor_user_id=actor.user_id,
            **fields,
        )
        return {"ok": True, "data": present_material(material)}

    @router.get("/materials/{material_id}")
    def read_material(
        material_id: str,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        return {"ok": True, "data": present_material(service.get_material(material_id))}

    @router.patch("/materials/{material_id}")
    def patch_material(
        material_id: str,
        body: UpdateMaterialRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR)),
        service: InventoryService = Depends(get_service),
    ):
        material = service.update_material(material_id, body.to_patch())
        return {"ok": True, "data": present_material(material)}

    @router.get("/materials/{material_id}/ledger")
    def read_ledger(
        material_id: str,
        limit: int = 200,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        transactions = service.get_material_ledger(material_id, limit=limit)
        return {"ok": True, "data": [present_transaction(tx) for tx in transactions]}

    # Stock movements
    @router.post("/materials/{material_id}/receive", status_code=201)
    def receive(
        material_id: str,
        body: ReceiveStockRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR, PRODUCTION)),
        service: InventoryService = Depends(get_service),
    ):
        ensure_production_permission(service, actor, "production_can_receive")
        movement = service.receive_stock(
            material_id,
            body.qty,
            unit_cost=body.unit_cost,
            notes=body.notes,
            actor_user_id=actor.user_id,
        )
        return {"ok": True, "data": present_movement(movement)}

    @router.post("/materials/{material_id}/adjust", status_code=201)
    def adjust(
        material_id: str,
        body: AdjustStockRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR, PRODUCTION)),
        service: InventoryService = Depends(get_service),
    ):
        ensure_production_permission(service, actor, "production_can_adjust")
        movement = service.adjust_stock(
            material_id, body.qty_delta, notes=body.notes, actor_user_id=actor.user_id
        )
        return {"ok": True, "data": present_movement(movement)}

    # Order BOM + consumption
    @router.get("/orders/{order_id}/bom")
    def read_bom(
        order_id: str,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        return {"ok": True, "data": present_bom(service.get_order_bom(order_id))}

    @router.patch("/orders/{order_id}/bom")
    def patch_bom(
        order_id: str,
        body: BomPatchRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR)),
        service: InventoryService = Depends(get_service),
    ):
        bom = service.upsert_order_bom(order_id, body.to_patch(), actor_user_id=actor.user_id)
        return {"ok": True, "data": present_bom(bom)}

    @router.post("/orders/{order_id}/consume", status_code=201)
    def consume(
        order_id: str,
        body: ConsumeRequest,
        actor: Actor = Depends(require_roles(ADMIN, SUPERVISOR, PRODUCTION)),
        service: InventoryService = Depends(get_service),
    ):
        ensure_production_permission(service, actor, "production_can_consume")
        result = service.consume_for_order(
            order_id,
            [item.model_dump() for item in body.items],
            actor_user_id=actor.user_id,
        )
        return {"ok": True, "data": present_consumption(result)}

    # Notifications feed
    @router.get("/notifications")
    def read_notifications(
        limit: int = 30,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        feed = service.inbox.list_for_role(
            actor.role, user_id=actor.user_id or actor.role, limit=limit
        )
        return {
            "ok": True,
            "data": {
                "items": [present_notification(item) for item in feed["items"]],
                "unreadCount": feed["unread_count"],
            },
        }

    @router.post("/notifications/read-all")
    def read_all_notifications(
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        marked = service.inbox.mark_all_read(actor.role, actor.user_id or actor.role)
        return {"ok": True, "data": {"marked": marked}}

    @router.post("/notifications/{notification_id}/read")
    def read_notification(
        notification_id: str,
        actor: Actor = Depends(require_roles(*READ_ROLES)),
        service: InventoryService = Depends(get_service),
    ):
        notification = service.inbox.mark_read(notification_id, actor.user_id or actor.role)
        return {"ok": True, "data": present_notification(notification)}

    return router


def create_app(
    config: Optional[AppConfig] = None,
    *,
    service: Optional[InventoryService] = None,
) -> FastAPI:
    config = config or get_config()
    configure_logging(config.log_level, json=config.log_json)
    database: Optional[InventoryDatabase] = None
    if service is None:
        database = InventoryDatabase(config.database_path)
        service = InventoryService(database)
        if config.seed_demo_data:
            ensure_demo_data(service)

    app = FastAPI(title="Fabrication Shop Inventory")
    app.state.inventory_service = service
    app.state.database = database

    if database is not None:

        @app.on_event("shutdown")
        async def shutdown_event() -> None:  # pragma: no cover - framework hook
            database.close()

    setup_exception_handlers(app)
    app.include_router(build_api_router())

    @app.get("/")
    def stock_overview(request: Request, q: str = "", low_only: bool = False):
        service: InventoryService = request.app.state.inventory_service
        page = service.list_materials(q=q, low_only=low_only, limit=200)
        feed = service.inbox.list_for_role(ADMIN, limit=10)
        return templates.TemplateResponse(
            request,
            "inventory.html",
            {
                "materials": page.items,
                "total": page.total,
                "q": q,
                "low_only": low_only,
                "notifications": feed["items"],
                "settings": service.get_settings(),
                "error": request.query_params.get("error"),
            },
        )

    @app.post("/materials/{material_id}/receive")
    def receive_form(
        material_id: str,
        request: Request,
        qty: str = Form(...),
        notes: str = Form(""),
    ):
        service: InventoryService = request.app.state.inventory_service
        try:
            service.receive_stock(material_id, qty, notes=notes)
        except InventoryError as exc:
            return RedirectResponse("/?" + urlencode({"error": exc.message}), status_code=303)
        return RedirectResponse("/", status_code=303)

    @app.post("/materials/{material_id}/adjust")
    def adjust_form(
        material_id: str,
        request: Request,
        qty_delta: str = Form(...),
        notes: str = Form(""),
    ):
        service: InventoryService = request.app.state.inventory_service
        try:
            service.adjust_stock(material_id, qty_delta, notes=notes)
        except InventoryError as exc:
            return RedirectResponse("/?" + urlencode({"error": exc.message}), status_code=303)
        return RedirectResponse("/", status_code=303)

    return app


def ensure_demo_data(service: InventoryService) -> None:
    if len(service.store.materials) > 0:
        return

    sheet = service.create_material(
        "SHT-S355-3",
        "Sheet steel S355 3 mm",
        "kg",
        category="Sheet",
        spec={"grade": "S355", "thicknessMm": 3},
        reorder_point_qty=100,
        reorder_target_qty=400,
    )
    tube = service.create_material(
        "TUB-40X40X3",
        "Square tube 40x40x3",
        "m",
        category="Profiles",
        spec={"grade": "S235", "lengthM": 6},
        reorder_point_qty=24,
        reorder_target_qty=96,
    )
    wire = service.create_material(
        "WIR-G3SI1-1.0",
        "Welding wire G3Si1 1.0 mm",
        "kg",
        category="Consumables",
        reorder_point_qty=15,
        reorder_target_qty=60,
    )
    service.receive_stock(sheet.id, 180, unit_cost=1.35, notes="Opening stock")
    service.receive_stock(tube.id, 60, unit_cost=4.10, notes="Opening stock")
    service.receive_stock(wire.id, 35, unit_cost=3.80, notes="Opening stock")

    order = service.register_order(
        "SO-2024-015",
        customer="Harbor Marine Works",
        due_date=date.today() + timedelta(days=14),
    )
    service.upsert_order_bom(
        order.id,
        {
            "status": "locked",
            "lines": [
                {"material_id": sheet.id, "planned_qty": 60},
                {"material_id": tube.id, "planned_qty": 18},
            ],
        },
    )
    service.consume_for_order(
        order.id,
        [
            {"material_id": sheet.id, "qty": 42.5},
            {"material_id": wire.id, "qty": 2},
        ],
    )


__all__ = ["create_app", "ensure_demo_data", "require_roles", "Actor"]

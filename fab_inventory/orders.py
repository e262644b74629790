"""Order directory port; orders themselves belong to the order workflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .domain import ProductionOrder
from .errors import NotFoundError
from .repository import RecordNotFoundError, Repository


@dataclass(frozen=True, slots=True)
class OrderRef:
    id: str
    order_number: str


class OrderDirectory(Protocol):
    def order_exists(self, order_id: str) -> bool: ...

    def get_order(self, order_id: str) -> OrderRef: ...


class RepositoryOrderDirectory:
    """Answers order lookups from a repository of production orders."""

    def __init__(self, orders: Repository[ProductionOrder]) -> None:
        self._orders = orders

    def order_exists(self, order_id: str) -> bool:
        return order_id in self._orders

    def get_order(self, order_id: str) -> OrderRef:
        try:
            order = self._orders.get(order_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(f"Order {order_id!r} not found", entity="order") from exc
        return OrderRef(id=order.id, order_number=order.order_number)


__all__ = ["OrderRef", "OrderDirectory", "RepositoryOrderDirectory"]

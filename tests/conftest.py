from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from fab_inventory.domain import Notification
from fab_inventory.services import InventoryService


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 8, 6, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[Notification] = []

    def create_notification(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingNotifier:
    def __init__(self) -> None:
        self.attempts = 0

    def create_notification(self, notification: Notification) -> None:
        self.attempts += 1
        raise ConnectionError("notification channel down")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(clock: FakeClock, notifier: RecordingNotifier) -> InventoryService:
    return InventoryService(notifier=notifier, clock=clock)


@pytest.fixture
def flat_bar(service: InventoryService):
    return service.create_material(
        "SKU-100", "Flat bar S235 40x8", "m", category="Bar stock", reorder_point_qty=10
    )


@pytest.fixture
def order(service: InventoryService):
    return service.register_order("WO-1042", customer="Northside Trailers")

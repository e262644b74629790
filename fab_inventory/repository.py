"""Repositories and the in-memory unit of work used by the inventory components."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, field
from typing import (
    Callable,
    ContextManager,
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
)

from .domain import (
    InventorySettings,
    InventoryTransaction,
    Material,
    Notification,
    OrderBom,
    ProductionOrder,
)

T = TypeVar("T")

_MISSING = object()


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class Repository(Protocol[T]):
    """Operations every backend offers; records handed out are detached copies."""

    def __contains__(self, item_id: object) -> bool: ...

    def __len__(self) -> int: ...

    def __iter__(self) -> Iterator[T]: ...

    def add(self, item_id: str, item: T) -> None: ...

    def upsert(self, item_id: str, item: T) -> None: ...

    def get(self, item_id: str) -> T: ...

    def remove(self, item_id: str) -> None: ...

    def list(self) -> List[T]: ...

    def list_by(self, value: str) -> List[T]: ...


class InventoryStore(Protocol):
    """Bundle of repositories sharing one all-or-nothing unit of work."""

    materials: Repository[Material]
    sku_index: Repository[str]
    transactions: Repository[InventoryTransaction]
    order_boms: Repository[OrderBom]
    settings: Repository[InventorySettings]
    orders: Repository[ProductionOrder]
    notifications: Repository[Notification]

    def atomic(self) -> ContextManager[None]: ...

    def on_commit(self, callback: Callable[[], None]) -> None: ...


Journal = Callable[["InMemoryRepository", str, object], None]


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary.

    ``index_field`` names the record attribute ``list_by`` filters on.
    Repositories of one store share the store's lock, so a reader never sees
    another thread's unit of work half applied.
    """

    def __init__(
        self,
        journal: Optional[Journal] = None,
        *,
        lock: Optional[threading.RLock] = None,
        index_field: Optional[str] = None,
    ) -> None:
        self._items: MutableMapping[str, T] = {}
        self._lock = lock or threading.RLock()
        self._journal = journal
        self._index_field = index_field

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, item_id: str, item: T) -> None:
        with self._lock:
            if item_id in self._items:
                raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
            self._record(item_id)
            self._items[item_id] = deepcopy(item)

    def upsert(self, item_id: str, item: T) -> None:
        with self._lock:
            self._record(item_id)
            self._items[item_id] = deepcopy(item)

    def get(self, item_id: str) -> T:
        with self._lock:
            try:
                return deepcopy(self._items[item_id])
            except KeyError as exc:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        with self._lock:
            if item_id not in self._items:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            self._record(item_id)
            del self._items[item_id]

    def list(self) -> List[T]:
        with self._lock:
            return [deepcopy(item) for item in self._items.values()]

    def list_by(self, value: str) -> List[T]:
        if self._index_field is None:
            raise RepositoryError("Repository has no index field")
        with self._lock:
            return [
                deepcopy(item)
                for item in self._items.values()
                if getattr(item, self._index_field) == value
            ]

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def _record(self, item_id: str) -> None:
        if self._journal is not None:
            self._journal(self, item_id, self._items.get(item_id, _MISSING))

    def _restore(self, item_id: str, previous: object) -> None:
        with self._lock:
            if previous is _MISSING:
                self._items.pop(item_id, None)
            else:
                self._items[item_id] = previous  # type: ignore[assignment]


@dataclass(slots=True)
class _UnitOfWork:
    undo: List[Tuple[InMemoryRepository, str, object]] = field(default_factory=list)
    callbacks: List[Callable[[], None]] = field(default_factory=list)


class InMemoryStore:
    """In-process store with one lock shared by all of its repositories.

    A unit of work holds that lock from start to commit or rollback, the way
    ``InventoryDatabase`` holds its connection lock.
    """

    def __init__(self) -> None:
        self._local = threading.local()
        self._lock = threading.RLock()
        journal = self._record
        lock = self._lock
        self.materials = InMemoryRepository[Material](journal, lock=lock)
        self.sku_index = InMemoryRepository[str](journal, lock=lock)
        self.transactions = InMemoryRepository[InventoryTransaction](
            journal, lock=lock, index_field="material_id"
        )
        self.order_boms = InMemoryRepository[OrderBom](journal, lock=lock)
        self.settings = InMemoryRepository[InventorySettings](journal, lock=lock)
        self.orders = InMemoryRepository[ProductionOrder](journal, lock=lock)
        self.notifications = InMemoryRepository[Notification](journal, lock=lock)

    def _current(self) -> Optional[_UnitOfWork]:
        return getattr(self._local, "unit", None)

    def _record(self, repo: InMemoryRepository, item_id: str, previous: object) -> None:
        unit = self._current()
        if unit is not None:
            unit.undo.append((repo, item_id, previous))

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the block as one unit; nested blocks join the outermost one."""

        if self._current() is not None:
            yield
            return
        unit = _UnitOfWork()
        with self._lock:
            self._local.unit = unit
            try:
                yield
            except BaseException:
                for repo, item_id, previous in reversed(unit.undo):
                    repo._restore(item_id, previous)
                raise
            finally:
                self._local.unit = None
        for callback in unit.callbacks:
            callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        unit = self._current()
        if unit is None:
            callback()
        else:
            unit.callbacks.append(callback)


__all__ = [
    "Repository",
    "InventoryStore",
    "InMemoryRepository",
    "InMemoryStore",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]

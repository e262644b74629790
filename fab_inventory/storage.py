"""SQLite-backed persistence for the inventory ledger."""

from __future__ import annotations

import pickle
import sqlite3
import threading
from contextlib import contextmanager
from types import TracebackType
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from .domain import (
    InventorySettings,
    InventoryTransaction,
    Material,
    Notification,
    OrderBom,
    ProductionOrder,
)
from .errors import StorageUnavailableError
from .repository import DuplicateRecordError, RecordNotFoundError, RepositoryError

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite."""

    def __init__(
        self,
        database: "InventoryDatabase",
        table: str,
        *,
        index_field: Optional[str] = None,
    ) -> None:
        self._database = database
        self._table = table
        self._index_field = index_field
        with database.lock:
            database.connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
                "id TEXT PRIMARY KEY, payload BLOB NOT NULL, lookup TEXT)"
            )
            if index_field is not None:
                database.connection.execute(
                    f"CREATE INDEX IF NOT EXISTS {table}_lookup ON {table} (lookup)"
                )
            database.connection.commit()

    @property
    def _connection(self) -> sqlite3.Connection:
        return self._database.connection

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        with self._database.lock:
            cursor = self._connection.execute(
                f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
            )
            return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        with self._database.lock:
            cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
            value = cursor.fetchone()
            return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._database.lock:
            try:
                self._connection.execute(
                    f"INSERT INTO {self._table} (id, payload, lookup) VALUES (?, ?, ?)",
                    (item_id, payload, self._lookup(item)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateRecordError(
                    f"Record with id {item_id!r} already exists"
                ) from exc
            self._database.commit_if_idle()

    def upsert(self, item_id: str, item: T) -> None:
        payload = pickle.dumps(item)
        with self._database.lock:
            self._connection.execute(
                f"INSERT INTO {self._table} (id, payload, lookup) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                "lookup = excluded.lookup",
                (item_id, payload, self._lookup(item)),
            )
            self._database.commit_if_idle()

    def get(self, item_id: str) -> T:
        with self._database.lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
            )
            row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        with self._database.lock:
            cursor = self._connection.execute(
                f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError(f"Record with id {item_id!r} not found")
            self._database.commit_if_idle()

    def list(self) -> List[T]:
        with self._database.lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} ORDER BY rowid"
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]

    def list_by(self, value: str) -> List[T]:
        if self._index_field is None:
            raise RepositoryError("Repository has no index field")
        with self._database.lock:
            cursor = self._connection.execute(
                f"SELECT payload FROM {self._table} WHERE lookup = ? ORDER BY rowid",
                (value,),
            )
            rows = cursor.fetchall()
        return [pickle.loads(row[0]) for row in rows]

    def _lookup(self, item: T) -> Optional[str]:
        if self._index_field is None:
            return None
        return getattr(item, self._index_field)


class InventoryDatabase:
    """SQLite repositories for every inventory aggregate plus the unit of work.

    One connection is shared by all threads, so every statement runs under a
    re-entrant lock and a unit of work holds that lock until it commits or
    rolls back.
    """

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        self._connection = connection
        self._lock = threading.RLock()
        self._depth = 0
        self._owner: Optional[int] = None
        self._callbacks: List[Callable[[], None]] = []
        self.materials = SQLiteRepository[Material](self, "materials")
        self.sku_index = SQLiteRepository[str](self, "material_skus")
        self.transactions = SQLiteRepository[InventoryTransaction](
            self, "inventory_transactions", index_field="material_id"
        )
        self.order_boms = SQLiteRepository[OrderBom](self, "order_boms")
        self.settings = SQLiteRepository[InventorySettings](self, "inventory_settings")
        self.orders = SQLiteRepository[ProductionOrder](self, "orders")
        self.notifications = SQLiteRepository[Notification](self, "notifications")

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def commit_if_idle(self) -> None:
        """Commit a standalone write; writes inside a unit wait for its commit."""

        if self._depth == 0:
            self._connection.commit()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return
            self._depth = 1
            self._owner = threading.get_ident()
            callbacks = self._callbacks = []
            try:
                yield
                self._connection.commit()
            except sqlite3.Error as exc:
                self._connection.rollback()
                raise StorageUnavailableError(
                    "Inventory storage could not complete the unit of work"
                ) from exc
            except BaseException:
                self._connection.rollback()
                raise
            finally:
                self._depth = 0
                self._owner = None
                self._callbacks = []
        for callback in callbacks:
            callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        if self._depth and self._owner == threading.get_ident():
            self._callbacks.append(callback)
        else:
            callback()

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "InventoryDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "InventoryDatabase"]

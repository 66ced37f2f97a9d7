"""Record store used by the delivery core, with an in-memory backend."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Iterator, Protocol, TypeVar

from ..config import settings
from ..errors import ConcurrentModification, DuplicateRecord, PreconditionViolation, RecordNotFound
from ..models.domain import (
    Bottle,
    BottleLog,
    Delivery,
    DeliveryTracking,
    Driver,
    Order,
    ProductZone,
    Subscription,
    SubscriptionPlan,
    UserAddress,
    Zone,
    ZoneOverride,
)

T = TypeVar("T")

TABLES: dict[type, str] = {
    Zone: "zones",
    ZoneOverride: "zone_overrides",
    UserAddress: "user_addresses",
    ProductZone: "product_zones",
    SubscriptionPlan: "subscription_plans",
    Subscription: "subscriptions",
    Order: "orders",
    Driver: "drivers",
    Delivery: "deliveries",
    DeliveryTracking: "delivery_tracking",
    Bottle: "bottles",
    BottleLog: "bottle_logs",
}

# Records that may only ever be inserted.
APPEND_ONLY: frozenset[type] = frozenset({BottleLog, DeliveryTracking})

# Column groups that must be unique per table. Rows with a None in the group are exempt.
UNIQUE_CONSTRAINTS: dict[type, tuple[tuple[str, ...], ...]] = {
    Bottle: (("bottle_number",),),
    Delivery: (("order_id",), ("subscription_id", "scheduled_date")),
    ProductZone: (("product_id", "zone_id"),),
}


def table_for(model: type) -> str:
    try:
        return TABLES[model]
    except KeyError as exc:
        raise TypeError(f"{model.__name__} is not a stored record type") from exc


def new_record_id() -> str:
    return uuid.uuid4().hex


class Store(Protocol):
    """Storage collaborator contract.

    ``update`` compares the record's ``version`` with the stored one and raises
    ``ConcurrentModification`` when they differ. Everything written inside
    ``transaction()`` is applied atomically.
    """

    def get(self, model: type[T], record_id: str) -> T | None: ...

    def find(self, model: type[T], **filters: Any) -> list[T]: ...

    def add(self, record: T) -> T: ...

    def update(self, record: T) -> T: ...

    def transaction(self) -> Any: ...


def require(store: Store, model: type[T], record_id: str) -> T:
    record = store.get(model, record_id)
    if record is None:
        raise RecordNotFound(f"{model.__name__} '{record_id}' not found.")
    return record


class InMemoryStore:
    """Process-local store holding deep copies of records."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Any]] = {name: {} for name in TABLES.values()}
        self._lock = threading.RLock()
        self._depth = 0

    def get(self, model: type[T], record_id: str) -> T | None:
        with self._lock:
            record = self._tables[table_for(model)].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def find(self, model: type[T], **filters: Any) -> list[T]:
        with self._lock:
            rows = self._tables[table_for(model)].values()
            return [
                copy.deepcopy(row)
                for row in rows
                if all(getattr(row, key) == value for key, value in filters.items())
            ]

    def add(self, record: T) -> T:
        model = type(record)
        with self._lock:
            table = self._tables[table_for(model)]
            if record.id is None:
                record.id = new_record_id()
            elif record.id in table:
                raise DuplicateRecord(f"{model.__name__} '{record.id}' already exists.")
            self._check_unique(model, record, table)
            record.version = 1
            table[record.id] = copy.deepcopy(record)
            return record

    def update(self, record: T) -> T:
        model = type(record)
        if model in APPEND_ONLY:
            raise PreconditionViolation(
                f"{model.__name__} records are append-only.", kind="immutable record"
            )
        with self._lock:
            table = self._tables[table_for(model)]
            stored = table.get(record.id) if record.id is not None else None
            if stored is None:
                raise RecordNotFound(f"{model.__name__} '{record.id}' not found.")
            if stored.version != record.version:
                raise ConcurrentModification(
                    f"{model.__name__} '{record.id}' was modified concurrently "
                    f"(expected version {record.version}, found {stored.version})."
                )
            self._check_unique(model, record, table)
            record.version += 1
            table[record.id] = copy.deepcopy(record)
            return record

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables) if self._depth == 0 else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if snapshot is not None:
                    self._tables = snapshot
                raise
            finally:
                self._depth -= 1

    def _check_unique(self, model: type, record: Any, table: dict[str, Any]) -> None:
        for columns in UNIQUE_CONSTRAINTS.get(model, ()):
            key = tuple(getattr(record, column) for column in columns)
            if any(value is None for value in key):
                continue
            for other_id, other in table.items():
                if other_id == record.id:
                    continue
                if tuple(getattr(other, column) for column in columns) == key:
                    raise DuplicateRecord(
                        f"{model.__name__} with {', '.join(columns)}={key} already exists."
                    )


@lru_cache()
def get_store() -> Store:
    """Return the configured store, falling back to memory when Supabase is unavailable."""
    if settings.storage_backend == "supabase":
        from ..db.supabase import get_supabase_client
        from .supabase_store import SupabaseStore

        client = get_supabase_client()
        if client is not None:
            return SupabaseStore(client)
        logging.warning("Supabase backend requested but not configured - using in-memory store")
    return InMemoryStore()

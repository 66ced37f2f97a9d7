"""Supabase-backed store.

Reads go through the supabase client, overlaid with anything the current
transaction has already written. Writes are collected per
transaction and handed to the ``freshtick_apply_writes`` database function
(see ``sql/schema.sql``), which applies them in a single Postgres transaction
and enforces the version check of every update.
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Iterator, TypeVar

from postgrest.exceptions import APIError
from pydantic import TypeAdapter

from ..errors import ConcurrentModification, DuplicateRecord, FreshtickError, PreconditionViolation
from .store import APPEND_ONLY, new_record_id, table_for

T = TypeVar("T")

APPLY_WRITES_RPC = "freshtick_apply_writes"


@lru_cache(maxsize=None)
def _adapter(model: type) -> TypeAdapter:
    return TypeAdapter(model)


def record_to_row(record: Any) -> dict[str, Any]:
    return _adapter(type(record)).dump_python(record, mode="json")


def row_to_record(model: type[T], row: dict[str, Any]) -> T:
    return _adapter(model).validate_python(row)


class SupabaseStore:
    def __init__(self, client: Any) -> None:
        self.client = client
        self._local = threading.local()

    def get(self, model: type[T], record_id: str) -> T | None:
        written = self._written()
        if (model, record_id) in written:
            return copy.deepcopy(written[(model, record_id)])
        response = self.client.table(table_for(model)).select("*").eq("id", record_id).limit(1).execute()
        rows = response.data or []
        return row_to_record(model, rows[0]) if rows else None

    def find(self, model: type[T], **filters: Any) -> list[T]:
        query = self.client.table(table_for(model)).select("*")
        for key, value in filters.items():
            if value is None:
                query = query.is_(key, "null")
            else:
                query = query.eq(key, getattr(value, "value", value))
        response = query.execute()
        records = [row_to_record(model, row) for row in (response.data or [])]

        # Overlay writes buffered by the current transaction.
        written = {
            record_id: record for (kind, record_id), record in self._written().items() if kind is model
        }
        if not written:
            return records
        merged = [written.pop(record.id, record) for record in records]
        merged.extend(written.values())
        return [
            copy.deepcopy(record)
            for record in merged
            if all(getattr(record, key) == value for key, value in filters.items())
        ]

    def add(self, record: T) -> T:
        if record.id is None:
            record.id = new_record_id()
        record.version = 1
        self._write(record, {"op": "insert", "table": table_for(type(record)), "row": record_to_row(record)})
        return record

    def update(self, record: T) -> T:
        model = type(record)
        if model in APPEND_ONLY:
            raise PreconditionViolation(
                f"{model.__name__} records are append-only.", kind="immutable record"
            )
        expected = record.version
        record.version = expected + 1
        self._write(
            record,
            {
                "op": "update",
                "table": table_for(model),
                "id": record.id,
                "expected_version": expected,
                "row": record_to_row(record),
            },
        )
        return record

    @contextmanager
    def transaction(self) -> Iterator[None]:
        pending = getattr(self._local, "pending", None)
        if pending is not None:
            yield
            return
        self._local.pending = []
        self._local.written = {}
        try:
            yield
            writes = self._local.pending
        finally:
            self._local.pending = None
            self._local.written = {}
        if writes:
            self._flush(writes)

    def _written(self) -> dict[tuple[type, str], Any]:
        return getattr(self._local, "written", None) or {}

    def _write(self, record: Any, write: dict[str, Any]) -> None:
        pending = getattr(self._local, "pending", None)
        if pending is None:
            self._flush([write])
        else:
            pending.append(write)
            self._local.written[(type(record), record.id)] = copy.deepcopy(record)

    def _flush(self, writes: list[dict[str, Any]]) -> None:
        try:
            self.client.rpc(APPLY_WRITES_RPC, {"writes": writes}).execute()
        except APIError as exc:
            message = exc.message or str(exc)
            if "version_conflict" in message:
                raise ConcurrentModification(message) from exc
            if exc.code == "23505":
                raise DuplicateRecord(message) from exc
            logging.error(f"Failed to apply {len(writes)} write(s) to Supabase: {message}")
            raise FreshtickError(f"Storage write failed: {message}") from exc

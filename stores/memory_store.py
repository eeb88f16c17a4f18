"""
In-process store with the same semantics as the Supabase tables.

Used for DRY_RUN (nothing leaves the process) and by the test-suite.
Enforces the same unique constraints as ``schema.sql`` so concurrent
find-then-create races surface as ConflictError exactly like Postgres.
Every operation yields to the event loop once before touching data, which
lets concurrent callers interleave between their find and their insert.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from errors import BackendUnavailable, ConflictError

from .base import BaseStore

logger = logging.getLogger("store.memory")

UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    "retailers": [("name", "website")],
    "product_groups": [("normalized_brand", "normalized_base_name")],
    "product_listings": [("retailer_id", "external_id")],
}


class MemoryStore(BaseStore):
    """Dict-of-lists tables with auto-increment integer ids."""

    def __init__(
        self,
        seed: dict[str, list[dict[str, Any]]] | None = None,
        *,
        unique_keys: dict[str, list[tuple[str, ...]]] | None = None,
        record_calls: bool = False,
    ):
        self._tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._next_id: dict[str, int] = defaultdict(lambda: 1)
        self._unique_keys = unique_keys if unique_keys is not None else UNIQUE_KEYS
        self.available = True
        self.record_calls = record_calls
        self.calls: list[tuple[str, str]] = []
        for table, rows in (seed or {}).items():
            for row in rows:
                self._insert_row(table, row)

    # -- inspection helpers (tests) ----------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._tables[table]]

    # -- internals ----------------------------------------------------------

    async def _enter(self, op: str, table: str) -> None:
        if self.record_calls:
            self.calls.append((op, table))
        await asyncio.sleep(0)
        if not self.available:
            raise BackendUnavailable(f"{table}: memory store offline")

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in filters.items())

    def _conflicts(self, table: str, row: dict[str, Any], ignore_id: Any = None) -> tuple[str, ...] | None:
        for columns in self._unique_keys.get(table, []):
            key = tuple(row.get(c) for c in columns)
            for existing in self._tables[table]:
                if existing.get("id") == ignore_id:
                    continue
                if tuple(existing.get(c) for c in columns) == key:
                    return columns
        return None

    def _insert_row(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        columns = self._conflicts(table, row)
        if columns:
            logger.debug("[%s] unique conflict on (%s)", table, ", ".join(columns))
            raise ConflictError(
                table,
                f'duplicate key value violates unique constraint ({", ".join(columns)})',
            )
        stored = copy.deepcopy(row)
        if stored.get("id") is None:
            stored["id"] = self._next_id[table]
        self._next_id[table] = max(self._next_id[table], int(stored["id"]) + 1)
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._tables[table].append(stored)
        return copy.deepcopy(stored)

    # -- BaseStore ----------------------------------------------------------

    async def find(
        self,
        table: str,
        filters: dict[str, Any],
        *,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await self._enter("find", table)
        rows = [copy.deepcopy(r) for r in self._tables[table] if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=desc)
        if limit:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        await self._enter("insert", table)
        return self._insert_row(table, row)

    async def update(
        self,
        table: str,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> list[dict[str, Any]]:
        await self._enter("update", table)
        updated = []
        for row in self._tables[table]:
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        on_conflict: str,
    ) -> dict[str, Any]:
        await self._enter("upsert", table)
        columns = [c.strip() for c in on_conflict.split(",")]
        key = {c: row.get(c) for c in columns}
        for existing in self._tables[table]:
            if self._matches(existing, key):
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)
        return self._insert_row(table, row)

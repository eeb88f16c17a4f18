"""
Supabase (PostgREST) implementation of the durable store.

Wraps the async supabase-py client.  Every ``execute()`` goes through
``_execute`` so callers only ever see the project's error taxonomy:

  - Postgres 23505 / "duplicate key value"  → ConflictError
  - anything else (HTTP, network, schema)    → BackendUnavailable

Usage:
    store = await SupabaseStore.connect(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    rows = await store.find("product_groups", {"normalized_brand": "kroger"})
"""

from __future__ import annotations

import logging
from typing import Any

from supabase import AsyncClient, acreate_client

from errors import BackendUnavailable, ConflictError

from .base import BaseStore

logger = logging.getLogger("store.supabase")

_UNIQUE_VIOLATION = "23505"


def _is_unique_violation(exc: Exception) -> bool:
    code = getattr(exc, "code", None)
    if code == _UNIQUE_VIOLATION:
        return True
    return "duplicate key value" in str(exc)


class SupabaseStore(BaseStore):
    """Thin async adapter over ``AsyncClient.table(...)`` query builders."""

    def __init__(self, client: AsyncClient):
        self._client = client

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseStore":
        if not url or not key:
            raise BackendUnavailable("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        client = await acreate_client(url, key)
        logger.info("Supabase client created for %s...", url[:40])
        return cls(client)

    async def _execute(self, table: str, query: Any) -> list[dict[str, Any]]:
        try:
            result = await query.execute()
        except Exception as exc:
            if _is_unique_violation(exc):
                raise ConflictError(table, str(exc)) from exc
            logger.error("[%s] Query failed: %s", table, exc)
            raise BackendUnavailable(f"{table}: {exc}") from exc
        return result.data or []

    @staticmethod
    def _apply_filters(query: Any, filters: dict[str, Any]) -> Any:
        for column, value in filters.items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        return query

    async def find(
        self,
        table: str,
        filters: dict[str, Any],
        *,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        query = self._apply_filters(self._client.table(table).select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        return await self._execute(table, query)

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._execute(table, self._client.table(table).insert(row))
        if not rows:
            raise BackendUnavailable(f"{table}: insert returned no representation")
        return rows[0]

    async def update(
        self,
        table: str,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> list[dict[str, Any]]:
        query = self._apply_filters(self._client.table(table).update(values), filters)
        return await self._execute(table, query)

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        on_conflict: str,
    ) -> dict[str, Any]:
        query = self._client.table(table).upsert(row, on_conflict=on_conflict)
        rows = await self._execute(table, query)
        if not rows:
            raise BackendUnavailable(f"{table}: upsert returned no representation")
        return rows[0]

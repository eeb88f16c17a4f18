"""
Abstract durable store used by the resolver and the retailer registry.

The core only needs four query shapes against four logical tables
(``retailers``, ``product_groups``, ``product_listings``,
``product_group_ingredients``):

  find    : equality filters on indexed columns, optional order + limit
  insert  : returns the written row; raises ConflictError on a unique
            constraint violation
  update  : equality filters, returns the updated rows
  upsert  : insert-or-update on a conflict target, returns the row

Any other failure is raised as BackendUnavailable.
"""

from __future__ import annotations

import abc
from typing import Any


class BaseStore(abc.ABC):
    """Async table-oriented store (PostgREST semantics)."""

    @abc.abstractmethod
    async def find(
        self,
        table: str,
        filters: dict[str, Any],
        *,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def update(
        self,
        table: str,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        *,
        on_conflict: str,
    ) -> dict[str, Any]:
        ...

    async def close(self) -> None:
        """Release connections.  No-op by default."""
        return None

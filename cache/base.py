"""Cache tier interface shared by the in-process and the durable tier."""

from __future__ import annotations

import abc
import time
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


class CacheTier(abc.ABC):
    """One storage level of the product cache.

    Tiers store whatever they are given, including ``last_updated``;
    expiry decisions belong to CacheStore.
    """

    name = "tier"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abc.abstractmethod
    async def get(self, external_id: str) -> dict[str, Any] | None:
        ...

    @abc.abstractmethod
    async def put(self, external_id: str, entry: dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def invalidate(self, external_id: str) -> None:
        ...

    @abc.abstractmethod
    async def get_group(self, group_id: Any) -> dict[str, Any] | None:
        ...

    @abc.abstractmethod
    async def put_group(self, group: dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def put_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Store *snapshot*; a current one demotes the group's other snapshots."""

    @abc.abstractmethod
    async def find_snapshots_by_hash(self, ingredients_hash: str) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def sweep(self, cutoff_ms: int) -> int:
        """Delete every entry with ``last_updated <= cutoff_ms``; return the count."""

"""In-process cache tier (plain dicts, lost on restart)."""

from __future__ import annotations

import copy
from typing import Any

from .base import CacheTier


class MemoryTier(CacheTier):
    name = "memory"

    def __init__(self):
        self._products: dict[str, dict[str, Any]] = {}
        self._groups: dict[Any, dict[str, Any]] = {}
        self._snapshots: dict[Any, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._products)

    async def get(self, external_id: str) -> dict[str, Any] | None:
        entry = self._products.get(external_id)
        return copy.deepcopy(entry) if entry is not None else None

    async def put(self, external_id: str, entry: dict[str, Any]) -> None:
        self._products[external_id] = copy.deepcopy(entry)

    async def invalidate(self, external_id: str) -> None:
        self._products.pop(external_id, None)

    async def get_group(self, group_id: Any) -> dict[str, Any] | None:
        group = self._groups.get(group_id)
        return copy.deepcopy(group) if group is not None else None

    async def put_group(self, group: dict[str, Any]) -> None:
        self._groups[group["id"]] = copy.deepcopy(group)

    async def put_snapshot(self, snapshot: dict[str, Any]) -> None:
        if snapshot.get("is_current"):
            for other in self._snapshots.values():
                if other["product_group_id"] == snapshot["product_group_id"]:
                    other["is_current"] = False
        self._snapshots[snapshot["id"]] = copy.deepcopy(snapshot)

    async def find_snapshots_by_hash(self, ingredients_hash: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(s)
            for s in self._snapshots.values()
            if s.get("ingredients_hash") == ingredients_hash
        ]

    async def sweep(self, cutoff_ms: int) -> int:
        removed = 0
        for table in (self._products, self._groups, self._snapshots):
            stale = [k for k, v in table.items() if v.get("last_updated", 0) <= cutoff_ms]
            for key in stale:
                del table[key]
            removed += len(stale)
        return removed

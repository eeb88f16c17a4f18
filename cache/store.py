"""
Two-tier product cache: in-process dicts in front of a durable SQLite file.

Usage:
    cache = CacheStore(MemoryTier(), SqliteTier("cache.db"), ttl_ms=PRODUCT_CACHE_TTL_MS)
    await cache.open()
    cache.start_sweeper(3600)
    entry = await cache.get("items_1-100")

Reads check the fast tier first and promote durable hits.  Writes go
through both tiers.  An entry is valid iff ``now - last_updated < ttl``;
expired entries are evicted on read and by the periodic sweep.

The durable tier is strictly optional.  Any failure there (not opened,
disk error, bad payload) is logged and the coordinator carries on with the
fast tier alone; callers always fall back to recomputation on a miss.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from errors import BackendUnavailable

from .base import CacheTier, now_ms

logger = logging.getLogger("cache")


class CacheStore:
    """Coordinator over a fast tier and an optional durable tier."""

    def __init__(
        self,
        fast: CacheTier,
        durable: CacheTier | None = None,
        *,
        ttl_ms: int,
        clock: Callable[[], int] = now_ms,
    ):
        self.fast = fast
        self.durable = durable
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._sweeper: asyncio.Task | None = None
        self.stats = {"hits": 0, "misses": 0, "expired": 0, "degraded": 0}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        if self.durable is None:
            logger.info("No durable cache tier configured; in-process only")
            return
        try:
            await self.durable.open()
        except BackendUnavailable as exc:
            logger.warning("Durable cache unavailable, continuing in-process only: %s", exc)

    async def close(self) -> None:
        await self.stop_sweeper()
        if self.durable is not None:
            await self.durable.close()

    def start_sweeper(self, interval_sec: float) -> None:
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval_sec))

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval_sec: float) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await self.sweep_expired()
            except Exception as exc:
                logger.warning("Cache sweep failed: %s", exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def is_valid(self, entry: dict[str, Any] | None) -> bool:
        if not entry:
            return False
        return self._clock() - entry.get("last_updated", 0) < self.ttl_ms

    async def _durable(self, method: str, *args: Any, default: Any = None) -> Any:
        if self.durable is None:
            return default
        try:
            return await getattr(self.durable, method)(*args)
        except BackendUnavailable as exc:
            self.stats["degraded"] += 1
            logger.warning("Durable cache %s failed, degrading: %s", method, exc)
            return default

    def _stamp(self, payload: dict[str, Any]) -> dict[str, Any]:
        return {**payload, "last_updated": self._clock()}

    # ------------------------------------------------------------------
    # Products (keyed by external_id)
    # ------------------------------------------------------------------

    async def get(self, external_id: str) -> dict[str, Any] | None:
        entry = await self.fast.get(external_id)
        if entry is not None:
            if self.is_valid(entry):
                self.stats["hits"] += 1
                logger.debug("Cache hit (memory) for %s", external_id)
                return entry
            self.stats["expired"] += 1
            await self.fast.invalidate(external_id)

        entry = await self._durable("get", external_id)
        if entry is not None:
            if self.is_valid(entry):
                self.stats["hits"] += 1
                logger.debug("Cache hit (durable) for %s", external_id)
                await self.fast.put(external_id, entry)
                return entry
            self.stats["expired"] += 1
            await self._durable("invalidate", external_id)

        self.stats["misses"] += 1
        logger.debug("Cache miss for %s", external_id)
        return None

    async def put(self, external_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        entry = self._stamp({**payload, "external_id": external_id})
        await self.fast.put(external_id, entry)
        await self._durable("put", external_id, entry)
        return entry

    async def invalidate(self, external_id: str) -> None:
        await self.fast.invalidate(external_id)
        await self._durable("invalidate", external_id)
        logger.info("Invalidated cache entry %s", external_id)

    # ------------------------------------------------------------------
    # Groups + ingredient snapshots
    # ------------------------------------------------------------------

    async def get_group(self, group_id: Any) -> dict[str, Any] | None:
        group = await self.fast.get_group(group_id)
        if self.is_valid(group):
            return group
        group = await self._durable("get_group", group_id)
        if self.is_valid(group):
            await self.fast.put_group(group)
            return group
        return None

    async def save_group(self, group: dict[str, Any]) -> None:
        entry = self._stamp(group)
        await self.fast.put_group(entry)
        await self._durable("put_group", entry)

    async def save_snapshot(self, snapshot: dict[str, Any]) -> None:
        entry = self._stamp(snapshot)
        await self.fast.put_snapshot(entry)
        await self._durable("put_snapshot", entry)

    async def find_by_ingredients_hash(self, ingredients_hash: str) -> dict[str, Any] | None:
        """First current, unexpired snapshot with this hash, plus its group."""
        candidates = await self._durable("find_snapshots_by_hash", ingredients_hash, default=None)
        tiers = [(self.durable, candidates)] if candidates else []
        tiers.append((self.fast, await self.fast.find_snapshots_by_hash(ingredients_hash)))

        for tier, snapshots in tiers:
            for snapshot in snapshots:
                if not snapshot.get("is_current") or not self.is_valid(snapshot):
                    continue
                if tier is self.fast:
                    group = await self.fast.get_group(snapshot["product_group_id"])
                else:
                    group = await self._durable("get_group", snapshot["product_group_id"])
                if group is not None:
                    return {"group": group, "snapshot": snapshot}
        return None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep_expired(self) -> int:
        """Remove entries older than the TTL from both tiers."""
        cutoff = self._clock() - self.ttl_ms
        removed = await self.fast.sweep(cutoff)
        removed += await self._durable("sweep", cutoff, default=0)
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
        return removed

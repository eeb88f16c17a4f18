"""
Retailer reference set.

Every scraped record names a ``retailer_id``; resolution rejects ids that
are not positive integers or not present in the ``retailers`` table before
anything is written.  Active retailers are held in-process and reloaded
once the map is older than the TTL (default 1 hour).  An id missing from
a still-fresh map forces one reload so a retailer created moments ago by
another process is still accepted.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable
from urllib.parse import urlparse

from cache.base import now_ms
from errors import ConflictError, ValidationError
from stores.base import BaseStore

logger = logging.getLogger("retailers")


def extract_store_from_url(url: str) -> str | None:
    """Path segment after ``/store/`` (e.g. ``https://x.com/store/kroger/...`` → ``kroger``)."""
    if not url:
        return None
    parts = [p for p in urlparse(url).path.split("/") if p]
    try:
        idx = parts.index("store")
    except ValueError:
        return None
    return parts[idx + 1] if idx + 1 < len(parts) else None


def _is_valid_id(retailer_id: Any) -> bool:
    return isinstance(retailer_id, int) and not isinstance(retailer_id, bool) and retailer_id > 0


class RetailerRegistry:
    def __init__(
        self,
        store: BaseStore,
        *,
        ttl_ms: int = 60 * 60 * 1000,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._by_id: dict[int, dict[str, Any]] = {}
        self._loaded_at: int | None = None
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return self._loaded_at is not None and self._clock() - self._loaded_at < self._ttl_ms

    async def refresh(self, force: bool = False) -> None:
        async with self._lock:
            if not force and self._fresh():
                return
            rows = await self._store.find("retailers", {"is_active": True})
            self._by_id = {row["id"]: row for row in rows}
            self._loaded_at = self._clock()
            logger.info("Loaded %d active retailers", len(self._by_id))

    async def ensure_known(self, retailer_id: Any) -> dict[str, Any]:
        """Return the retailer row or raise ValidationError."""
        if not _is_valid_id(retailer_id):
            raise ValidationError("Retailer ID must be a positive integer")
        await self.refresh()
        retailer = self._by_id.get(retailer_id)
        if retailer is None:
            await self.refresh(force=True)
            retailer = self._by_id.get(retailer_id)
        if retailer is None:
            raise ValidationError(f"Unknown retailer_id: {retailer_id}")
        return retailer

    async def get_or_create(self, name: str, website: str = "instacart") -> dict[str, Any]:
        if not name or not name.strip():
            raise ValidationError("Retailer name is required")
        name = name.strip()
        await self.refresh()
        for row in self._by_id.values():
            if row.get("name", "").lower() == name.lower() and row.get("website") == website:
                return row

        now_iso = datetime.now(timezone.utc).isoformat()
        try:
            row = await self._store.insert("retailers", {
                "name": name,
                "website": website,
                "is_active": True,
                "updated_at": now_iso,
            })
            logger.info("Created retailer %r (id=%s)", name, row["id"])
        except ConflictError:
            rows = await self._store.find("retailers", {"name": name, "website": website}, limit=1)
            if not rows:
                raise
            row = rows[0]
            logger.debug("Retailer %r created concurrently; using id=%s", name, row["id"])
        self._by_id[row["id"]] = row
        return row

    async def get_retailer_id(self, url: str) -> int:
        name = extract_store_from_url(url)
        if not name:
            raise ValidationError("Unable to determine store from URL")
        row = await self.get_or_create(name)
        return row["id"]

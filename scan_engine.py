"""
Entry point the scraping / overlay layer calls once per product sighting.

    engine = ScanEngine(store, matcher, cache, retailers, strictness="moderate")
    await engine.start()
    result = await engine.resolve_and_match(record)
    # {"product_group_id": 7, "listing_id": 12, "toxin_flags": [...],
    #  "ingredients_hash": "1a2b3c4d", "is_new_snapshot": True, "severity": "moderate"}
    await engine.close()

All collaborators are built once by the caller and passed in; nothing here
reads the environment.
"""

from __future__ import annotations

import logging
from typing import Any

from cache.store import CacheStore
from ingredient_hasher import hash_ingredients, same_ingredients
from ingredient_matcher import IngredientMatcher, filter_by_strictness, severity_for, unique_by_name
from product_resolver import ProductIdentityResolver
from retailers import RetailerRegistry
from stores.base import BaseStore

logger = logging.getLogger("engine")


class ScanEngine:
    def __init__(
        self,
        store: BaseStore,
        matcher: IngredientMatcher,
        cache: CacheStore,
        retailers: RetailerRegistry,
        *,
        strictness: str = "moderate",
        sweep_interval_sec: float | None = None,
    ):
        self.store = store
        self.matcher = matcher
        self.cache = cache
        self.retailers = retailers
        self.strictness = strictness
        self.sweep_interval_sec = sweep_interval_sec
        self.resolver = ProductIdentityResolver(store, retailers, cache)

    async def start(self) -> None:
        await self.cache.open()
        if self.sweep_interval_sec:
            self.cache.start_sweeper(self.sweep_interval_sec)
        logger.info("Scan engine started (strictness=%s, %d lookup keys)", self.strictness, len(self.matcher))

    async def close(self) -> None:
        await self.cache.close()
        await self.store.close()

    # ------------------------------------------------------------------

    async def _flags_for(self, text: str, ingredients_hash: str) -> list[dict[str, Any]]:
        """Reuse flags computed for identical text on any group, else match."""
        hit = await self.cache.find_by_ingredients_hash(ingredients_hash)
        if hit is not None:
            snapshot = hit["snapshot"]
            if (
                snapshot.get("matcher_revision") == self.matcher.revision
                and same_ingredients(snapshot.get("ingredients_text"), snapshot.get("ingredients_hash"), text)
            ):
                logger.debug("Reusing flags from snapshot %s", snapshot.get("id"))
                return snapshot.get("toxin_flags") or []
        return unique_by_name(self.matcher.match(text))

    async def resolve_and_match(self, record: dict[str, Any]) -> dict[str, Any]:
        resolved = await self.resolver.resolve(record)
        clean, group, listing = resolved["record"], resolved["group"], resolved["listing"]

        text = clean.get("ingredients_text")
        if text:
            ingredients_hash = hash_ingredients(text)
            flags = await self._flags_for(text, ingredients_hash)
            snapshot, is_new = await self.resolver.merge_ingredients(group["id"], text, flags)
            await self.cache.save_snapshot({**snapshot, "matcher_revision": self.matcher.revision})
        else:
            is_new = False
            snapshot = await self.resolver.current_snapshot(group["id"])
            flags = unique_by_name(snapshot.get("toxin_flags") or []) if snapshot else None
            ingredients_hash = snapshot.get("ingredients_hash") if snapshot else None

        visible = filter_by_strictness(flags, self.strictness) if flags is not None else None
        result = {
            "product_group_id": group["id"],
            "listing_id": listing.get("id"),
            "toxin_flags": visible or [],
            "ingredients_hash": ingredients_hash,
            "is_new_snapshot": is_new,
            "severity": severity_for(visible),
        }
        await self.cache.put(clean["external_id"], {
            **result,
            "retailer_id": clean["retailer_id"],
            "matcher_revision": self.matcher.revision,
        })
        return result

    async def invalidate(self, external_id: str) -> None:
        await self.cache.invalidate(external_id)

    async def sweep_expired(self) -> int:
        return await self.cache.sweep_expired()

"""
Product identity resolution: scraped sighting → product group + listing.

Pipeline per record:
  1. validate the record, check the retailer exists (before any write)
  2. known listing?   (retailer_id, external_id) via cache, then store
  3. extract identity  (brand / base name + normalized forms)
  4. find-or-create the product group on the normalized pair
  5. upsert the listing against that group
  6. merge ingredient text into the group's snapshot history

There is no lock.  Concurrent callers racing to create the same group hit
the store's unique constraint; the loser catches ConflictError, re-queries
and carries on with the winner's row.  Listings go through an upsert on
(retailer_id, external_id).  Re-running resolution for the same input
always converges on the same rows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from cache.store import CacheStore
from errors import ConflictError, ValidationError
from ingredient_hasher import hash_ingredients, same_ingredients
from name_normalizer import extract_product_info
from retailers import RetailerRegistry
from stores.base import BaseStore

logger = logging.getLogger("resolver")

GROUPS = "product_groups"
LISTINGS = "product_listings"
SNAPSHOTS = "product_group_ingredients"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_scraped_record(record: dict[str, Any]) -> dict[str, Any]:
    """Return a cleaned copy of *record* or raise ValidationError.

    Every problem is collected so the caller sees them all at once.
    ``name`` is accepted as a legacy spelling of ``raw_name``.  ``brand``
    is type-checked and passed through, but identity always comes from
    ``raw_name`` (see extract_product_info).
    """
    if not isinstance(record, dict):
        raise ValidationError("Record must be an object")

    errors: list[str] = []
    clean: dict[str, Any] = {}

    external_id = record.get("external_id")
    if not isinstance(external_id, str) or not external_id.strip():
        errors.append("External ID is required")
    else:
        clean["external_id"] = external_id.strip()

    retailer_id = record.get("retailer_id")
    if isinstance(retailer_id, bool) or not isinstance(retailer_id, int) or retailer_id <= 0:
        errors.append("Retailer ID must be a positive integer")
    else:
        clean["retailer_id"] = retailer_id

    raw_name = record.get("raw_name", record.get("name"))
    if not isinstance(raw_name, str) or not raw_name.strip():
        errors.append("Product name is required")
    else:
        clean["raw_name"] = raw_name.strip()

    url_path = record.get("url_path")
    if not isinstance(url_path, str) or not url_path.strip():
        errors.append("URL path is required")
    else:
        clean["url_path"] = url_path.strip()

    price = record.get("price_amount")
    if price is not None:
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            errors.append("Price must be a number")
        else:
            clean["price_amount"] = price

    for key in ("price_unit", "image_url", "brand"):
        value = record.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(f"{key} must be a string")
        else:
            clean[key] = value

    ingredients = record.get("ingredients_text")
    if ingredients is not None:
        if not isinstance(ingredients, str):
            errors.append("Ingredients must be a string")
        elif not ingredients.strip():
            errors.append("Ingredients string cannot be empty")
        else:
            clean["ingredients_text"] = ingredients.strip()

    if errors:
        raise ValidationError(errors)
    return clean


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ProductIdentityResolver:
    def __init__(self, store: BaseStore, retailers: RetailerRegistry, cache: CacheStore):
        self._store = store
        self._retailers = retailers
        self._cache = cache

    async def resolve(self, record: dict[str, Any]) -> dict[str, Any]:
        """Resolve a sighting to ``{"record", "group", "listing"}``.

        Raises ValidationError before any write, BackendUnavailable when the
        store fails.
        """
        clean = validate_scraped_record(record)
        await self._retailers.ensure_known(clean["retailer_id"])

        group = await self._group_for_known_listing(clean)
        if group is None:
            identity = extract_product_info(clean["raw_name"])
            if not identity["normalized_base_name"]:
                raise ValidationError("Base name is required for product group")
            group = await self.find_or_create_group(identity)

        listing = await self.upsert_listing(group["id"], clean)
        return {"record": clean, "group": group, "listing": listing}

    # -- step 2 ----------------------------------------------------------

    async def _group_for_known_listing(self, record: dict[str, Any]) -> dict[str, Any] | None:
        group_id = None
        cached = await self._cache.get(record["external_id"])
        if cached and cached.get("retailer_id") == record["retailer_id"]:
            group_id = cached.get("product_group_id")

        if group_id is None:
            rows = await self._store.find(
                LISTINGS,
                {"retailer_id": record["retailer_id"], "external_id": record["external_id"]},
                limit=1,
            )
            if not rows:
                return None
            group_id = rows[0].get("product_group_id")
            if group_id is None:
                return None

        group = await self._cache.get_group(group_id)
        if group is not None:
            return group
        rows = await self._store.find(GROUPS, {"id": group_id}, limit=1)
        if not rows:
            logger.warning("Listing %s points at missing group %s", record["external_id"], group_id)
            return None
        await self._cache.save_group(rows[0])
        return rows[0]

    # -- steps 3 + 4 -----------------------------------------------------

    async def find_or_create_group(self, identity: dict[str, str]) -> dict[str, Any]:
        key = {
            "normalized_brand": identity["normalized_brand"],
            "normalized_base_name": identity["normalized_base_name"],
        }
        rows = await self._store.find(GROUPS, key, limit=1)
        if rows:
            group = rows[0]
        else:
            try:
                group = await self._store.insert(GROUPS, {
                    "brand": identity["brand"],
                    "base_name": identity["base_name"],
                    **key,
                    "current_ingredients_id": None,
                    "updated_at": _now_iso(),
                })
                logger.info(
                    "Created product group %s: %s / %s",
                    group["id"], group["brand"], group["base_name"],
                )
            except ConflictError:
                rows = await self._store.find(GROUPS, key, limit=1)
                if not rows:
                    raise
                group = rows[0]
                logger.debug("Product group created concurrently; using id=%s", group["id"])

        await self._cache.save_group(group)
        return group

    # -- step 5 ----------------------------------------------------------

    async def upsert_listing(self, group_id: Any, record: dict[str, Any]) -> dict[str, Any]:
        key = {"retailer_id": record["retailer_id"], "external_id": record["external_id"]}
        now_iso = _now_iso()
        fields = {
            "product_group_id": group_id,
            "url_path": record["url_path"],
            "price_amount": record.get("price_amount"),
            "price_unit": record.get("price_unit"),
            "image_url": record.get("image_url"),
            "last_seen_at": now_iso,
            "updated_at": now_iso,
        }

        return await self._store.upsert(
            LISTINGS,
            {**key, **fields},
            on_conflict="retailer_id,external_id",
        )

    # -- step 6 ----------------------------------------------------------

    async def current_snapshot(self, group_id: Any) -> dict[str, Any] | None:
        rows = await self._store.find(
            SNAPSHOTS,
            {"product_group_id": group_id, "is_current": True},
            order_by="id",
            desc=True,
            limit=1,
        )
        return rows[0] if rows else None

    async def merge_ingredients(
        self,
        group_id: Any,
        ingredients_text: str,
        toxin_flags: list[dict[str, Any]],
    ) -> tuple[dict[str, Any], bool]:
        """Record *ingredients_text* against the group.

        Same text as the current snapshot → bump verification_count.
        Anything else → insert a new current snapshot, then retire the older
        one.  The group always has a current snapshot, even if the insert
        fails or a reader runs in between.
        Returns ``(snapshot, is_new_snapshot)``.
        """
        text = ingredients_text.strip()
        if not text:
            raise ValidationError("Ingredients string cannot be empty")
        ingredients_hash = hash_ingredients(text)
        now_iso = _now_iso()

        current = await self.current_snapshot(group_id)
        if current and same_ingredients(current.get("ingredients_text"), current.get("ingredients_hash"), text):
            updated = await self._store.update(
                SNAPSHOTS,
                {"id": current["id"]},
                {
                    "verification_count": (current.get("verification_count") or 0) + 1,
                    "toxin_flags": toxin_flags,
                    "updated_at": now_iso,
                },
            )
            snapshot = updated[0] if updated else current
            logger.debug("Verified snapshot %s for group %s (count=%s)",
                         snapshot["id"], group_id, snapshot.get("verification_count"))
            return snapshot, False

        snapshot = await self._store.insert(SNAPSHOTS, {
            "product_group_id": group_id,
            "ingredients_text": text,
            "ingredients_hash": ingredients_hash,
            "toxin_flags": toxin_flags,
            "is_current": True,
            "verification_count": 1,
            "found_at": now_iso,
            "updated_at": now_iso,
        })
        snapshot = await self._settle_current(group_id, snapshot)
        logger.info("New ingredient snapshot %s for group %s (hash %s)",
                    snapshot["id"], group_id, ingredients_hash)
        return snapshot, True

    async def _settle_current(self, group_id: Any, inserted: dict[str, Any]) -> dict[str, Any]:
        """Retire every current snapshot of the group except the newest.

        Covers both the snapshot being replaced and rows from concurrent
        inserts.  Every racer computes the same winner, so the group
        converges without a lock.
        """
        rows = await self._store.find(SNAPSHOTS, {"product_group_id": group_id, "is_current": True})
        if not rows:
            return {**inserted, "is_current": False}
        winner = max(rows, key=lambda r: r["id"])
        for row in rows:
            if row["id"] != winner["id"]:
                await self._store.update(SNAPSHOTS, {"id": row["id"]}, {"is_current": False})
        if len(rows) > 1:
            logger.info("Settled %d concurrent current snapshots for group %s", len(rows), group_id)

        await self._store.update(
            GROUPS,
            {"id": group_id},
            {"current_ingredients_id": winner["id"], "updated_at": _now_iso()},
        )
        if winner["id"] != inserted["id"]:
            return {**inserted, "is_current": False}
        return inserted

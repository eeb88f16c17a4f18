"""
Toxic food filter scan orchestrator.

Reads scraped product records (one JSON object per line), resolves each
to a product group, matches its ingredients against the concern list and
stores the result.  Records are pushed through the batched request queue
exactly as the page scanner does, then a scan report is logged.

Usage:
    python main.py records.jsonl     # scan a file of scraped records
    cat records.jsonl | python main.py -

Environment variables:
    DRY_RUN=true                  # in-memory store, skip all Supabase writes
    SUPABASE_URL / SUPABASE_SERVICE_KEY
    CACHE_DB_PATH=cache.db        # "" for in-process cache only
    STRICTNESS_LEVEL=moderate     # lenient | moderate | strict
    INCLUDE_ALLERGENS=true        # also flag common allergens
    CUSTOM_INGREDIENTS_PATH=custom.json
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from collections import Counter
from typing import Any, Iterable

from cache import CacheStore, MemoryTier, SqliteTier
from config import settings
from config.ingredients import COMMON_ALLERGENS, DEFAULT_TOXIC_INGREDIENTS, load_custom_ingredients
from errors import BackendUnavailable
from ingredient_matcher import IngredientMatcher
from product_data_manager import ProductDataManager
from retailers import RetailerRegistry
from scan_engine import ScanEngine
from stores import BaseStore, MemoryStore, SupabaseStore

logger = logging.getLogger("orchestrator")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_matcher() -> IngredientMatcher:
    matcher = IngredientMatcher()
    defaults = list(DEFAULT_TOXIC_INGREDIENTS)
    if settings.INCLUDE_ALLERGENS:
        defaults.extend(COMMON_ALLERGENS)
    matcher.load(defaults)
    matcher.add_custom(load_custom_ingredients(settings.CUSTOM_INGREDIENTS_PATH))
    return matcher


async def build_store(records: list[dict[str, Any]]) -> BaseStore:
    if settings.DRY_RUN:
        # Every retailer named in the input is treated as known.
        retailer_ids = sorted({
            r["retailer_id"] for r in records
            if isinstance(r.get("retailer_id"), int) and not isinstance(r.get("retailer_id"), bool)
            and r["retailer_id"] > 0
        })
        logger.info("[DRY RUN] Using in-memory store (%d retailers seeded)", len(retailer_ids))
        return MemoryStore({
            "retailers": [
                {"id": rid, "name": f"retailer-{rid}", "website": "instacart", "is_active": True}
                for rid in retailer_ids
            ],
        })
    return await SupabaseStore.connect(settings.SUPABASE_URL, settings.SUPABASE_KEY)


def build_engine(store: BaseStore, matcher: IngredientMatcher) -> ScanEngine:
    durable = SqliteTier(settings.CACHE_DB_PATH) if settings.CACHE_DB_PATH else None
    cache = CacheStore(MemoryTier(), durable, ttl_ms=settings.PRODUCT_CACHE_TTL_MS)
    retailers = RetailerRegistry(store, ttl_ms=settings.RETAILER_CACHE_TTL_MS)
    return ScanEngine(
        store,
        matcher,
        cache,
        retailers,
        strictness=settings.STRICTNESS_LEVEL,
        sweep_interval_sec=settings.CACHE_SWEEP_INTERVAL_SEC,
    )


def read_records(lines: Iterable[str]) -> list[dict[str, Any]]:
    records = []
    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            logger.warning("Skipping line %d: %s", lineno, exc)
    return records


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


async def run(records: list[dict[str, Any]]) -> dict[str, Any]:
    """Scan *records* end to end and return the per-record results."""
    start = time.time()

    logger.info("=" * 60)
    logger.info("Toxic Food Filter Scan Starting")
    logger.info("  DRY_RUN:     %s", settings.DRY_RUN)
    logger.info("  RECORDS:     %d", len(records))
    logger.info("  STRICTNESS:  %s", settings.STRICTNESS_LEVEL)
    logger.info("  CACHE DB:    %s", settings.CACHE_DB_PATH or "(disabled)")
    logger.info("=" * 60)

    store = await build_store(records)
    engine = build_engine(store, build_matcher())
    await engine.start()

    manager = ProductDataManager(
        engine.resolve_and_match,
        chunk_size=settings.BATCH_CHUNK_SIZE,
        chunk_pause_sec=settings.BATCH_CHUNK_PAUSE_SEC,
        batch_delay_sec=settings.BATCH_DELAY_SEC,
    )
    results: dict[str, Any] = {}

    def _collect(external_id: str):
        def _cb(result: dict[str, Any] | None) -> None:
            results[external_id] = result
        return _cb

    try:
        for record in records:
            external_id = str(record.get("external_id") or "")
            manager.queue_product(record, _collect(external_id))
        await manager.flush()
    finally:
        await engine.close()

    elapsed = time.time() - start
    _log_scan_report(results, manager.stats, elapsed)
    return results


def _log_scan_report(
    results: dict[str, dict[str, Any] | None],
    stats: dict[str, int],
    elapsed: float,
) -> None:
    """Log totals, flagged products per severity and the most common flags."""
    resolved = [r for r in results.values() if r is not None]
    failed = len(results) - len(resolved)
    by_severity = Counter(r["severity"] for r in resolved)
    top_flags = Counter(f["name"] for r in resolved for f in r["toxin_flags"])

    logger.info("=" * 60)
    logger.info("SCAN COMPLETE")
    logger.info("  Resolved:     %d", len(resolved))
    logger.info("  No data:      %d", by_severity.get("no_data", 0))
    logger.info("  Failed:       %d", failed)
    logger.info("  Deduplicated: %d", stats.get("deduplicated", 0))
    logger.info("  Duration:     %.1fs", elapsed)
    for severity in ("high", "moderate", "low", "none"):
        if by_severity.get(severity):
            logger.info("  [%s] %d products", severity.upper(), by_severity[severity])
    if top_flags:
        logger.info("  Top flagged ingredients:")
        for name, count in top_flags.most_common(10):
            logger.info("    %3d  %s", count, name)
    logger.info("=" * 60)


def main(argv: list[str]) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if len(argv) < 2:
        logger.error("Usage: python main.py <records.jsonl | ->")
        return 2
    if not settings.DRY_RUN and (not settings.SUPABASE_URL or not settings.SUPABASE_KEY):
        logger.error("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        return 1

    if argv[1] == "-":
        records = read_records(sys.stdin)
    else:
        with open(argv[1], encoding="utf-8") as fh:
            records = read_records(fh)

    try:
        asyncio.run(run(records))
    except BackendUnavailable as exc:
        logger.error("Backend unavailable: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))

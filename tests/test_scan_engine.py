"""End-to-end tests for resolve_and_match."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from cache import CacheStore, MemoryTier, SqliteTier
from retailers import RetailerRegistry
from scan_engine import ScanEngine

TTL = 7 * 24 * 60 * 60 * 1000


def _names(result):
    return [f["name"] for f in result["toxin_flags"]]


@pytest.mark.asyncio
async def test_end_to_end_scenario(engine, store, make_record):
    record = make_record(
        external_id="items_1-100",
        retailer_id=3,
        raw_name="Kroger - French Fried Potatoes",
        ingredients_text="Potatoes, Monosodium Glutamate, Salt",
    )

    first = await engine.resolve_and_match(record)
    assert first["is_new_snapshot"] is True
    assert _names(first) == ["Monosodium Glutamate"]
    assert first["toxin_flags"][0]["concern_level"] == "Moderate"
    assert first["severity"] == "moderate"

    groups = store.rows("product_groups")
    assert len(groups) == 1
    assert (groups[0]["brand"], groups[0]["base_name"]) == ("Kroger", "French Fried Potatoes")

    second = await engine.resolve_and_match(dict(record))
    assert second["product_group_id"] == first["product_group_id"]
    assert second["is_new_snapshot"] is False
    assert _names(second) == ["Monosodium Glutamate"]
    assert second["ingredients_hash"] == first["ingredients_hash"]

    snapshots = store.rows("product_group_ingredients")
    assert len(snapshots) == 1
    assert snapshots[0]["verification_count"] == 2


@pytest.mark.asyncio
async def test_no_ingredients_uses_current_snapshot(engine, make_record):
    await engine.resolve_and_match(make_record())
    result = await engine.resolve_and_match(make_record(external_id="items_1-200", ingredients_text=None))
    assert _names(result) == ["Monosodium Glutamate"]
    assert result["is_new_snapshot"] is False
    assert result["ingredients_hash"] is not None


@pytest.mark.asyncio
async def test_no_data(engine, make_record):
    result = await engine.resolve_and_match(make_record(ingredients_text=None))
    assert result["toxin_flags"] == []
    assert result["ingredients_hash"] is None
    assert result["severity"] == "no_data"


@pytest.mark.asyncio
async def test_clean_ingredients(engine, make_record):
    result = await engine.resolve_and_match(make_record(ingredients_text="Potatoes, Salt"))
    assert result["toxin_flags"] == []
    assert result["severity"] == "none"


@pytest.mark.asyncio
async def test_flags_deduplicated_and_filtered(store, matcher, cache, retailers, make_record):
    matcher.add_custom([{"name": "Mystery Gum", "concern_level": "Low"}])
    lenient = ScanEngine(store, matcher, cache, retailers, strictness="lenient")
    result = await lenient.resolve_and_match(make_record(
        ingredients_text="HFCS, MSG, High Fructose Corn Syrup, Mystery Gum",
    ))
    assert _names(result) == ["High Fructose Corn Syrup"]
    assert result["severity"] == "high"

    strict = ScanEngine(store, matcher, cache, retailers, strictness="strict")
    result = await strict.resolve_and_match(make_record(
        external_id="items_1-101",
        ingredients_text="HFCS, MSG, High Fructose Corn Syrup, Mystery Gum",
    ))
    assert _names(result) == ["High Fructose Corn Syrup", "Monosodium Glutamate", "Mystery Gum"]


@pytest.mark.asyncio
async def test_custom_low_entry_hidden_under_moderate(engine, matcher, make_record):
    matcher.add_custom([{"name": "Mystery Gum", "concern_level": "Low"}, "Carrageenan Blend"])
    result = await engine.resolve_and_match(make_record(
        ingredients_text="Potatoes, Mystery Gum, Carrageenan Blend",
    ))
    assert _names(result) == ["Carrageenan Blend"]


@pytest.mark.asyncio
async def test_identical_text_reuses_flags(engine, matcher, make_record):
    await engine.resolve_and_match(make_record())
    with patch.object(matcher, "match", wraps=matcher.match) as spy:
        result = await engine.resolve_and_match(make_record(
            external_id="items_9-900",
            raw_name="Store Brand - Fries",
        ))
    spy.assert_not_called()
    assert _names(result) == ["Monosodium Glutamate"]


@pytest.mark.asyncio
async def test_matcher_revision_forces_rematch(engine, matcher, make_record):
    await engine.resolve_and_match(make_record())
    matcher.add_custom(["Salt"])
    result = await engine.resolve_and_match(make_record())
    assert _names(result) == ["Monosodium Glutamate", "Salt"]


@pytest.mark.asyncio
async def test_invalidate(engine, cache, make_record):
    await engine.resolve_and_match(make_record())
    assert await cache.get("items_1-100") is not None
    await engine.invalidate("items_1-100")
    assert await cache.get("items_1-100") is None
    # still resolvable after a cache bust
    result = await engine.resolve_and_match(make_record())
    assert result["is_new_snapshot"] is False


@pytest.mark.asyncio
async def test_concurrent_page_scan(engine, store, make_record):
    records = [
        make_record(external_id=f"items_{i}", raw_name=f"Kroger - Product {i % 3}")
        for i in range(12)
    ]
    results = await asyncio.gather(*[engine.resolve_and_match(r) for r in records])
    assert len(store.rows("product_groups")) == 3
    assert len({r["listing_id"] for r in results}) == 12
    for group in store.rows("product_groups"):
        current = [
            s for s in store.rows("product_group_ingredients")
            if s["product_group_id"] == group["id"] and s["is_current"]
        ]
        assert len(current) == 1


@pytest.mark.asyncio
async def test_start_and_close_with_durable_tier(tmp_path, store, matcher, retailers, clock, make_record):
    durable = SqliteTier(str(tmp_path / "cache.db"))
    cache = CacheStore(MemoryTier(), durable, ttl_ms=TTL, clock=clock)
    engine = ScanEngine(store, matcher, cache, retailers, sweep_interval_sec=3600)
    await engine.start()
    assert durable.is_open
    first = await engine.resolve_and_match(make_record())
    await engine.close()
    assert not durable.is_open

    # restart against the same file: the product entry survives
    cache = CacheStore(MemoryTier(), SqliteTier(str(tmp_path / "cache.db")), ttl_ms=TTL, clock=clock)
    restarted = ScanEngine(store, matcher, cache, RetailerRegistry(store, clock=clock))
    await restarted.start()
    entry = await cache.get("items_1-100")
    assert entry["product_group_id"] == first["product_group_id"]
    await restarted.close()

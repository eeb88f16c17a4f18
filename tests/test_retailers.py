"""Tests for the retailer reference set."""

from __future__ import annotations

import asyncio

import pytest

from errors import ValidationError
from retailers import RetailerRegistry, extract_store_from_url

HOUR = 60 * 60 * 1000


@pytest.mark.parametrize("url, expected", [
    ("https://www.instacart.com/store/kroger/products/123", "kroger"),
    ("https://www.instacart.com/store/aldi", "aldi"),
    ("https://www.instacart.com/store/", None),
    ("https://www.instacart.com/categories/snacks", None),
    ("", None),
])
def test_extract_store_from_url(url, expected):
    assert extract_store_from_url(url) == expected


@pytest.mark.asyncio
async def test_ensure_known(retailers):
    assert (await retailers.ensure_known(3))["name"] == "kroger"


@pytest.mark.asyncio
@pytest.mark.parametrize("retailer_id", [0, -5, True, "3", None])
async def test_ensure_known_rejects_bad_ids(retailers, retailer_id):
    with pytest.raises(ValidationError):
        await retailers.ensure_known(retailer_id)


@pytest.mark.asyncio
async def test_ttl_reload(store, clock):
    registry = RetailerRegistry(store, ttl_ms=HOUR, clock=clock)
    await registry.ensure_known(3)
    await registry.ensure_known(3)
    assert store.calls.count(("find", "retailers")) == 1

    clock.advance(HOUR)
    await registry.ensure_known(3)
    assert store.calls.count(("find", "retailers")) == 2


@pytest.mark.asyncio
async def test_unknown_id_forces_one_refresh(store, clock):
    registry = RetailerRegistry(store, ttl_ms=HOUR, clock=clock)
    await registry.ensure_known(3)

    # created elsewhere after our map was loaded
    await store.insert("retailers", {"id": 8, "name": "aldi", "website": "instacart", "is_active": True})
    assert (await registry.ensure_known(8))["name"] == "aldi"

    with pytest.raises(ValidationError, match="Unknown retailer_id: 99"):
        await registry.ensure_known(99)


@pytest.mark.asyncio
async def test_get_or_create(retailers, store):
    existing = await retailers.get_or_create("Kroger")
    assert existing["id"] == 3

    created = await retailers.get_or_create("aldi")
    assert created["id"] != 3
    assert (await retailers.ensure_known(created["id"]))["name"] == "aldi"


@pytest.mark.asyncio
async def test_get_or_create_race(store, clock):
    registries = [RetailerRegistry(store, clock=clock) for _ in range(3)]
    rows = await asyncio.gather(*[r.get_or_create("publix") for r in registries])
    assert len({row["id"] for row in rows}) == 1
    assert len([r for r in store.rows("retailers") if r["name"] == "publix"]) == 1


@pytest.mark.asyncio
async def test_get_retailer_id_from_url(retailers):
    rid = await retailers.get_retailer_id("https://www.instacart.com/store/kroger/storefront")
    assert rid == 3
    with pytest.raises(ValidationError):
        await retailers.get_retailer_id("https://www.instacart.com/")

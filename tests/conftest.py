"""Shared fixtures for the toxic food filter test suite."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project modules are importable from tests/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cache import CacheStore, MemoryTier
from config.ingredients import DEFAULT_TOXIC_INGREDIENTS
from ingredient_matcher import IngredientMatcher
from retailers import RetailerRegistry
from scan_engine import ScanEngine
from stores import MemoryStore

DAY_MS = 24 * 60 * 60 * 1000
PRODUCT_TTL_MS = 7 * DAY_MS
START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """In-memory store seeded with retailers 3 (active) and 4 (inactive)."""
    return MemoryStore({
        "retailers": [
            {"id": 3, "name": "kroger", "website": "instacart", "is_active": True},
            {"id": 4, "name": "closed-store", "website": "instacart", "is_active": False},
        ],
    }, record_calls=True)


@pytest.fixture
def matcher():
    m = IngredientMatcher()
    m.load(DEFAULT_TOXIC_INGREDIENTS)
    return m


@pytest.fixture
def cache(clock):
    return CacheStore(MemoryTier(), None, ttl_ms=PRODUCT_TTL_MS, clock=clock)


@pytest.fixture
def retailers(store, clock):
    return RetailerRegistry(store, clock=clock)


@pytest.fixture
def engine(store, matcher, cache, retailers):
    return ScanEngine(store, matcher, cache, retailers, strictness="moderate")


@pytest.fixture
def make_record():
    """Factory that builds scraped record dicts with sensible defaults.

    Any keyword argument overrides the default; pass ``None`` to drop a key.
    """

    def _make(
        *,
        external_id="items_1-100",
        retailer_id=3,
        raw_name="Kroger - French Fried Potatoes",
        url_path="/store/kroger/products/100",
        price_amount=3.49,
        price_unit="each",
        image_url="https://img.example.com/100.jpg",
        ingredients_text="Potatoes, Monosodium Glutamate, Salt",
        **overrides,
    ):
        record = {
            "external_id": external_id,
            "retailer_id": retailer_id,
            "raw_name": raw_name,
            "url_path": url_path,
            "price_amount": price_amount,
            "price_unit": price_unit,
            "image_url": image_url,
            "ingredients_text": ingredients_text,
        }
        record.update(overrides)
        return {k: v for k, v in record.items() if v is not None}

    return _make

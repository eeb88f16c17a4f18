"""
Runtime configuration, read once from the environment (and ``.env``).

Only ``main.py`` wires these values into components; every component takes
its settings as constructor arguments so tests never depend on the
environment.

Environment variables:
    SUPABASE_URL, SUPABASE_SERVICE_KEY   # durable store credentials
    DRY_RUN=true                         # in-memory store, no network writes
    CACHE_DB_PATH=cache.db               # "" disables the durable cache tier
    PRODUCT_CACHE_TTL_MS                 # default 7 days
    RETAILER_CACHE_TTL_MS                # default 1 hour
    BATCH_CHUNK_SIZE=10
    BATCH_CHUNK_PAUSE_SEC=0.1
    BATCH_DELAY_SEC=0.5
    CACHE_SWEEP_INTERVAL_SEC=3600
    CUSTOM_INGREDIENTS_PATH=custom.json  # optional user custom entries
    STRICTNESS_LEVEL=moderate            # lenient | moderate | strict
    INCLUDE_ALLERGENS=false
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


# ---------------------------------------------------------------------------
# Durable store
# ---------------------------------------------------------------------------

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")

DRY_RUN = _env_bool("DRY_RUN")

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

PRODUCT_CACHE_TTL_MS = int(os.getenv("PRODUCT_CACHE_TTL_MS", str(7 * 24 * 60 * 60 * 1000)))
RETAILER_CACHE_TTL_MS = int(os.getenv("RETAILER_CACHE_TTL_MS", str(60 * 60 * 1000)))

CACHE_DB_PATH = os.getenv("CACHE_DB_PATH", "toxic_food_filter_cache.db")
CACHE_SWEEP_INTERVAL_SEC = float(os.getenv("CACHE_SWEEP_INTERVAL_SEC", "3600"))

# ---------------------------------------------------------------------------
# Batching (bounds outstanding requests against the backend)
# ---------------------------------------------------------------------------

BATCH_CHUNK_SIZE = int(os.getenv("BATCH_CHUNK_SIZE", "10"))
BATCH_CHUNK_PAUSE_SEC = float(os.getenv("BATCH_CHUNK_PAUSE_SEC", "0.1"))
BATCH_DELAY_SEC = float(os.getenv("BATCH_DELAY_SEC", "0.5"))

# ---------------------------------------------------------------------------
# Matching preferences
# ---------------------------------------------------------------------------

CUSTOM_INGREDIENTS_PATH = os.getenv("CUSTOM_INGREDIENTS_PATH", "")
STRICTNESS_LEVEL = os.getenv("STRICTNESS_LEVEL", "moderate").lower()
INCLUDE_ALLERGENS = _env_bool("INCLUDE_ALLERGENS")

from .base import CacheTier, now_ms
from .memory_tier import MemoryTier
from .sqlite_tier import SqliteTier
from .store import CacheStore

__all__ = [
    "CacheStore",
    "CacheTier",
    "MemoryTier",
    "SqliteTier",
    "now_ms",
]

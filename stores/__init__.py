from .base import BaseStore
from .memory_store import MemoryStore
from .supabase_store import SupabaseStore

__all__ = [
    "BaseStore",
    "MemoryStore",
    "SupabaseStore",
]

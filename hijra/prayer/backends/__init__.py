from .base import RemoteEntry, RemoteStore, RemoteStoreError
from .sql import SqlRemoteStore
from .supabase import SupabaseRemoteStore

__all__ = ["RemoteEntry", "RemoteStore", "RemoteStoreError", "SqlRemoteStore", "SupabaseRemoteStore", "get_backend"]

_BACKENDS = {
    "sql": SqlRemoteStore,
    "supabase": SupabaseRemoteStore,
}


def get_backend(backend_type: str, config: dict):
    """Factory: return remote store instance for given type, or None if unknown."""
    cls = _BACKENDS.get((backend_type or "").lower())
    if not cls:
        return None
    return cls.from_config(config)

# Cache persistence: generic key/value stores and the typed registry adapter.

from circles_registry.cache.store import CacheStore, InMemoryCacheStore, SqlCacheStore
from circles_registry.cache.user_cache import CacheKeys, UserCache

__all__ = [
    "CacheKeys",
    "CacheStore",
    "InMemoryCacheStore",
    "SqlCacheStore",
    "UserCache",
]

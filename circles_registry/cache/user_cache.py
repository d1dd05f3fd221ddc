"""
Typed access to the three registry keys in a CacheStore.

    <ns>-users-data         CacheSnapshot
    <ns>-users-last-update  LastUpdateMeta
    <ns>-users-last-cursor  CursorMeta

Reads never raise: a failed or corrupt read is logged and treated as "nothing
cached", which sends the next refresh down the full-fetch path. Writes raise
CacheStoreError so the ingestion engine can fail the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from circles_registry.cache.store import CacheStore
from circles_registry.config.env import DEFAULT_CACHE_NAMESPACE
from circles_registry.core.exceptions import CacheStoreError
from circles_registry.models import CacheSnapshot, CursorMeta, LastUpdateMeta
from circles_registry.registry_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheKeys:
    namespace: str = DEFAULT_CACHE_NAMESPACE

    @property
    def users_data(self) -> str:
        return f"{self.namespace}-users-data"

    @property
    def last_update(self) -> str:
        return f"{self.namespace}-users-last-update"

    @property
    def last_cursor(self) -> str:
        return f"{self.namespace}-users-last-cursor"


class UserCache:
    """Snapshot, last-update and cursor persistence over a namespaced CacheStore."""

    def __init__(self, store: CacheStore, keys: CacheKeys | None = None) -> None:
        self._store = store
        self.keys = keys or CacheKeys()

    def _read(self, key: str, parse: Callable[[dict[str, Any]], T]) -> T | None:
        try:
            raw = self._store.get(key)
        except CacheStoreError as e:
            logger.error("cache_read_failed", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return parse(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("cache_value_invalid", key=key, error=str(e))
            return None

    def load_snapshot(self) -> CacheSnapshot | None:
        return self._read(self.keys.users_data, CacheSnapshot.from_dict)

    def load_last_update(self) -> LastUpdateMeta | None:
        return self._read(self.keys.last_update, LastUpdateMeta.from_dict)

    def load_cursor(self) -> CursorMeta | None:
        return self._read(self.keys.last_cursor, CursorMeta.from_dict)

    def save_snapshot(self, snapshot: CacheSnapshot) -> None:
        """Write snapshot then last-update meta. Raises CacheStoreError."""
        self._store.set(self.keys.users_data, snapshot.to_dict())
        meta = LastUpdateMeta(timestamp=snapshot.last_update, users_count=snapshot.total_count)
        self._store.set(self.keys.last_update, meta.to_dict())

    def save_cursor(self, meta: CursorMeta) -> None:
        self._store.set(self.keys.last_cursor, meta.to_dict())

    def clear_cursor(self) -> None:
        self._store.delete(self.keys.last_cursor)

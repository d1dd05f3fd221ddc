"""
Key/value cache store: get/set/delete of JSON values by string key.

SqlCacheStore persists to any SQLAlchemy URL (PostgreSQL in production, SQLite
file by default). InMemoryCacheStore keeps JSON-encoded copies in a dict so
callers never share mutable state with the store, same as a real backend.
Failures surface as CacheStoreError.
"""

from __future__ import annotations

import json
import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from sqlalchemy import Column, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from circles_registry.config.env import mask_url
from circles_registry.core.exceptions import CacheStoreError
from circles_registry.registry_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


class CacheStore(Protocol):
    """Point operations on JSON-compatible values. No cross-key transactions."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise CacheStoreError(f"Value for {key} is not JSON-serialisable: {e}", key=key) from e


def _decode(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise CacheStoreError(f"Corrupt cache value for {key}: {e}", key=key) from e


class InMemoryCacheStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else _decode(key, raw)

    def set(self, key: str, value: Any) -> None:
        encoded = _encode(key, value)
        with self._lock:
            self._data[key] = encoded

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


# -----------------------------------------------------------------------------
# SQLAlchemy backend
# -----------------------------------------------------------------------------


class CacheEntry(Base):
    """One cached value: JSON text keyed by cache key."""

    __tablename__ = "cache_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(Integer, nullable=False, index=True)  # Unix


class SqlCacheStore:
    """
    Cache store on a SQL table (cache_entries). Each operation runs in its own
    session: commits on success, rolls back on error.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("cache_store_engine", url=mask_url(url).split("//")[-1])

    def init_db(self) -> None:
        """Create cache_entries if missing. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.exception("cache_store_init_failed", error=str(e))
            raise CacheStoreError(f"Failed to initialise cache store: {e}") from e
        logger.info("cache_store_init_db", url=mask_url(self._url).split("//")[-1])

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Any | None:
        try:
            with self._session_scope() as session:
                row = session.get(CacheEntry, key)
                raw = row.value if row else None
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed to read {key}: {e}", key=key) from e
        return None if raw is None else _decode(key, raw)

    def set(self, key: str, value: Any) -> None:
        encoded = _encode(key, value)
        try:
            with self._session_scope() as session:
                session.merge(CacheEntry(key=key, value=encoded, updated_at=int(time.time())))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed to write {key}: {e}", key=key) from e
        logger.debug("cache_store_set", key=key, size=len(encoded))

    def delete(self, key: str) -> None:
        try:
            with self._session_scope() as session:
                session.query(CacheEntry).filter(CacheEntry.key == key).delete()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed to delete {key}: {e}", key=key) from e

"""
CirclesUsersService: the registry facade used by the API server and tools.

Wires query client, trust counter, cache adapter, ingestion engine and status
lookup together. build_service() constructs everything from Settings; tests
construct the parts directly with fakes.
"""

from __future__ import annotations

import time
from typing import Callable

from circles_registry.cache.store import CacheStore, SqlCacheStore
from circles_registry.cache.user_cache import CacheKeys, UserCache
from circles_registry.config.settings import Settings, get_settings
from circles_registry.core.exceptions import CacheStoreError
from circles_registry.ingestion.engine import IngestionConfig, IngestionEngine
from circles_registry.lookup.status import StatusLookup
from circles_registry.models import (
    CacheStatistics,
    FetchMode,
    IngestionResult,
    ParticipantRecord,
    UserStatusCheck,
)
from circles_registry.query.client import CirclesQueryClient, CirclesRpcTransport
from circles_registry.registry_logging import get_logger
from circles_registry.trust.counter import TrustCounter

logger = get_logger(__name__)


class CirclesUsersService:
    def __init__(
        self,
        engine: IngestionEngine,
        lookup: StatusLookup,
        cache: UserCache,
    ) -> None:
        self.engine = engine
        self.lookup = lookup
        self._cache = cache

    @classmethod
    def create(
        cls,
        client: CirclesQueryClient,
        store: CacheStore,
        *,
        namespace: str = "circles",
        ingestion_config: IngestionConfig | None = None,
        trust_query_limit: int = 1000,
        update_interval_sec: float = 24 * 60 * 60,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> CirclesUsersService:
        config = ingestion_config or IngestionConfig()
        cache = UserCache(store, CacheKeys(namespace))
        engine = IngestionEngine(
            client,
            TrustCounter(client, limit=trust_query_limit),
            cache,
            config,
            sleep=sleep,
            clock=clock,
        )
        lookup = StatusLookup(
            cache,
            verification_threshold=config.verification_threshold,
            update_interval_sec=update_interval_sec,
            clock=clock,
        )
        return cls(engine, lookup, cache)

    def refresh(
        self,
        mode: FetchMode | str = FetchMode.AUTO,
        batch_size: int | None = None,
        max_users: int | None = None,
    ) -> IngestionResult:
        return self.engine.refresh(mode, batch_size=batch_size, max_users=max_users)

    def check_status(self, address: str) -> UserStatusCheck:
        return self.lookup.check_status(address)

    def get_cached_users(self) -> list[ParticipantRecord]:
        return self.lookup.get_cached_users()

    def get_statistics(self) -> CacheStatistics:
        return self.lookup.get_statistics()

    def needs_refresh(self) -> bool:
        return self.lookup.needs_refresh()

    def clear_cursor(self) -> bool:
        """Drop the stored cursor so the next refresh runs in full. False if the delete failed."""
        try:
            self._cache.clear_cursor()
        except CacheStoreError as e:
            logger.error("cursor_clear_failed", error=str(e))
            return False
        logger.info("cursor_cleared", next_refresh="full")
        return True


def build_service(settings: Settings | None = None) -> CirclesUsersService:
    """Production wiring: requests transport + SQLAlchemy cache store from Settings."""
    settings = settings or get_settings()
    transport = CirclesRpcTransport(
        settings.rpc_url,
        timeout=settings.request_timeout_sec,
        max_retries=settings.max_retries,
    )
    client = CirclesQueryClient(transport, namespace=settings.query_namespace)
    store = SqlCacheStore(settings.cache_db_url)
    store.init_db()
    config = IngestionConfig(
        batch_size=settings.batch_size,
        max_users=settings.max_users,
        max_new_users=settings.max_users,
        enrich_delay_sec=settings.enrich_delay_sec,
        page_delay_sec=settings.page_delay_sec,
        verification_threshold=settings.verification_threshold,
    )
    logger.info(
        "service_built",
        query_namespace=settings.query_namespace,
        cache_namespace=settings.cache_namespace,
        batch_size=settings.batch_size,
    )
    return CirclesUsersService.create(
        client,
        store,
        namespace=settings.cache_namespace,
        ingestion_config=config,
        trust_query_limit=settings.trust_query_limit,
        update_interval_sec=settings.update_interval_sec,
    )

"""
Read side of the registry: point status checks, cached user list, statistics,
and the staleness check that decides whether a scheduled refresh is due.

Reads the cache only; never calls the indexer. Addresses are opaque keys
compared case-insensitively; format validation belongs to callers.
"""

from __future__ import annotations

import time
from typing import Callable

from circles_registry.cache.user_cache import UserCache
from circles_registry.models import (
    CacheStatistics,
    ParticipantRecord,
    UserStatusCheck,
    ts_to_datetime,
)
from circles_registry.registry_logging import get_logger
from circles_registry.trust.classifier import VERIFICATION_THRESHOLD, classify
from circles_registry.utils.address_utils import normalize_address

logger = get_logger(__name__)

DEFAULT_UPDATE_INTERVAL_SEC = 24 * 60 * 60
SECONDS_PER_HOUR = 3600


class StatusLookup:
    def __init__(
        self,
        cache: UserCache,
        *,
        verification_threshold: int = VERIFICATION_THRESHOLD,
        update_interval_sec: float = DEFAULT_UPDATE_INTERVAL_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._threshold = verification_threshold
        self._update_interval_sec = update_interval_sec
        self._clock = clock

    def get_cached_users(self) -> list[ParticipantRecord]:
        snapshot = self._cache.load_snapshot()
        if snapshot is None:
            logger.warning("cached_users_missing")
            return []
        return snapshot.users

    def check_status(self, address: str) -> UserStatusCheck:
        """Status of `address` in the cached snapshot (case-insensitive)."""
        key = normalize_address(address)
        if not key:
            return UserStatusCheck()
        user = next((u for u in self.get_cached_users() if u.key == key), None)
        if user is None:
            return UserStatusCheck()
        verification = classify(user.incoming_trust_count, self._threshold)
        return UserStatusCheck(
            found=True,
            verified=user.is_verified,
            registered=True,
            trust_count=user.incoming_trust_count,
            needed_trusts=0 if user.is_verified else verification.needed_trusts,
        )

    def needs_refresh(self) -> bool:
        """True when nothing was ever written or the last write is at least update_interval_sec old."""
        meta = self._cache.load_last_update()
        if meta is None:
            logger.info("refresh_needed_no_cache")
            return True
        age_sec = self._clock() - meta.timestamp
        needed = age_sec >= self._update_interval_sec
        logger.info(
            "cache_age_checked",
            cache_age_hours=round(age_sec / SECONDS_PER_HOUR),
            refresh_needed=needed,
        )
        return needed

    def get_statistics(self) -> CacheStatistics:
        users = self.get_cached_users()
        meta = self._cache.load_last_update()
        cursor = self._cache.load_cursor()
        verified = sum(1 for u in users if u.is_verified)
        stats = CacheStatistics(
            total_users=len(users),
            verified_users=verified,
            registered_users=len(users) - verified,
        )
        if meta is not None:
            stats.last_update = ts_to_datetime(meta.timestamp)
            stats.cache_age = f"{round((self._clock() - meta.timestamp) / SECONDS_PER_HOUR)} hours"
        if cursor is not None:
            stats.cursor_position = cursor.cursor.position
            stats.cursor_timestamp = ts_to_datetime(cursor.timestamp)
        return stats

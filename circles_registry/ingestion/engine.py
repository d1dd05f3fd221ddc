"""
Ingestion engine: page registrations out of the indexer, enrich each avatar
with trust counts and verification status, merge into the cached snapshot,
and persist the snapshot, last-update meta and resumption cursor.

Modes:
- full: start at the head of the stream, dedup against this run only, and
  replace the snapshot with what was collected.
- incremental: resume from the persisted cursor, split rows into new avatars
  and refresh observations of cached ones, merge into the existing snapshot.
  Falls back to full when there is no cursor or no cached users.
- auto: incremental iff a cursor and a non-empty snapshot exist.

Page loop stops on max_consecutive_empty pages without new rows, end of
stream, or the user cap. Page failures count toward the same tolerance; if the
tolerance runs out on a streak that contains any failure the run is aborted
and nothing is written.
Everything is sequential, with a short sleep between rows and between pages
to keep the RPC call rate bounded.

The engine does no locking. Callers must not run two refreshes against the
same cache at once.
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from circles_registry.cache.user_cache import UserCache
from circles_registry.core.exceptions import CacheStoreError, IngestionAborted, RemoteQueryError
from circles_registry.models import (
    CacheSnapshot,
    CursorMeta,
    FetchMode,
    IngestionResult,
    PaginationCursor,
    ParticipantRecord,
    RegistrationEvent,
)
from circles_registry.query.client import CirclesQueryClient
from circles_registry.registry_logging import get_logger
from circles_registry.trust.classifier import VERIFICATION_THRESHOLD, classify
from circles_registry.trust.counter import TrustCounter

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_NEW_USERS = 5000
DEFAULT_MAX_CONSECUTIVE_EMPTY = 3
DEFAULT_ENRICH_DELAY_SEC = 0.02
DEFAULT_PAGE_DELAY_SEC = 0.1
PROGRESS_EVERY_ROWS = 25


class IngestionState(str, Enum):
    IDLE = "idle"
    FETCHING_PAGE = "fetching_page"
    ENRICHING_ROW = "enriching_row"
    MERGING = "merging"
    PERSISTED = "persisted"


@dataclass
class IngestionConfig:
    """Paging, caps, and rate-limit delays for ingestion runs."""

    batch_size: int = DEFAULT_BATCH_SIZE
    max_users: int | None = None
    """Full mode: stop once this many users were collected (None = no cap)."""
    max_new_users: int = DEFAULT_MAX_NEW_USERS
    """Incremental mode: stop once this many users not yet cached were collected."""
    max_consecutive_empty: int = DEFAULT_MAX_CONSECUTIVE_EMPTY
    enrich_delay_sec: float = DEFAULT_ENRICH_DELAY_SEC
    page_delay_sec: float = DEFAULT_PAGE_DELAY_SEC
    verification_threshold: int = VERIFICATION_THRESHOLD


@dataclass
class CollectedRun:
    """What one page loop produced: enriched records in fetch order and the last row processed."""

    records: list[ParticipantRecord] = field(default_factory=list)
    last_processed: PaginationCursor | None = None
    pages: int = 0
    duplicates: int = 0


@dataclass
class MergeOutcome:
    users: list[ParticipantRecord]
    new_count: int
    updated_count: int


def merge_records(
    existing: list[ParticipantRecord],
    observed: list[ParticipantRecord],
) -> MergeOutcome:
    """
    Merge observed records into existing ones by case-folded address.

    A match whose incoming count or verified flag changed takes the observed
    counts, status and timestamp (updated). Unmatched records are appended
    (new). Existing records without an observation are kept as they are, so
    the result is never smaller than `existing`.
    """
    users = list(existing)
    index_by_key: dict[str, int] = {}
    for i, user in enumerate(users):
        index_by_key.setdefault(user.key, i)

    new_count = 0
    updated_count = 0
    for record in observed:
        idx = index_by_key.get(record.key)
        if idx is None:
            index_by_key[record.key] = len(users)
            users.append(record)
            new_count += 1
            continue
        current = users[idx]
        if (
            current.incoming_trust_count != record.incoming_trust_count
            or current.is_verified != record.is_verified
        ):
            users[idx] = dataclasses.replace(
                current,
                incoming_trust_count=record.incoming_trust_count,
                outgoing_trust_count=record.outgoing_trust_count,
                is_verified=record.is_verified,
                status=record.status,
                timestamp=record.timestamp,
            )
            updated_count += 1
            logger.debug(
                "user_trust_updated",
                address=record.address,
                incoming_trust_count=record.incoming_trust_count,
                is_verified=record.is_verified,
            )
    return MergeOutcome(users=users, new_count=new_count, updated_count=updated_count)


class IngestionEngine:
    """Runs full / incremental refreshes of the cached user snapshot."""

    def __init__(
        self,
        client: CirclesQueryClient,
        counter: TrustCounter,
        cache: UserCache,
        config: IngestionConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._counter = counter
        self._cache = cache
        self.config = config or IngestionConfig()
        self._sleep = sleep
        self._clock = clock
        self._state = IngestionState.IDLE

    @property
    def state(self) -> IngestionState:
        return self._state

    def _transition(self, state: IngestionState) -> None:
        if state is not self._state:
            logger.debug("ingestion_state", from_state=self._state.value, to_state=state.value)
            self._state = state

    def _now(self) -> int:
        return int(self._clock())

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def resolve_mode(self) -> FetchMode:
        """Incremental iff a cursor is stored and the cached snapshot has users."""
        cursor = self._cache.load_cursor()
        snapshot = self._cache.load_snapshot()
        if cursor is not None and snapshot is not None and snapshot.users:
            return FetchMode.INCREMENTAL
        return FetchMode.FULL

    def refresh(
        self,
        mode: FetchMode | str = FetchMode.AUTO,
        *,
        batch_size: int | None = None,
        max_users: int | None = None,
    ) -> IngestionResult:
        """
        Run one refresh. max_users is the full-mode cap in full mode and the
        new-user cap in incremental mode.
        """
        try:
            fetch_mode = FetchMode(mode)
        except ValueError:
            logger.error("refresh_invalid_mode", mode=str(mode))
            return IngestionResult(success=False, mode=str(mode), error=f"Unknown refresh mode: {mode}")

        logger.info("refresh_requested", mode=fetch_mode.value)
        if fetch_mode is FetchMode.AUTO:
            fetch_mode = self.resolve_mode()
            logger.info("refresh_auto_mode_selected", mode=fetch_mode.value)

        if fetch_mode is FetchMode.INCREMENTAL:
            return self.run_incremental(batch_size=batch_size, max_new_users=max_users)
        return self.run_full(batch_size=batch_size, max_users=max_users)

    def run_full(
        self,
        *,
        batch_size: int | None = None,
        max_users: int | None = None,
    ) -> IngestionResult:
        """Collect from the head of the stream and replace the snapshot."""
        mode = FetchMode.FULL.value
        cap = max_users if max_users is not None else self.config.max_users
        logger.info("full_fetch_started", batch_size=batch_size or self.config.batch_size, max_users=cap)
        try:
            run = self._collect(None, batch_size or self.config.batch_size, cap=cap, existing_keys=None)
            self._transition(IngestionState.MERGING)
            now = self._now()
            snapshot = CacheSnapshot.build(run.records, now)
            self._persist(snapshot, run.last_processed, now)
        except (IngestionAborted, CacheStoreError) as e:
            return self._failed(mode, f"Failed to fetch and cache Circles users: {e}")
        except Exception as e:
            logger.exception("full_fetch_unexpected_error", error=str(e))
            return self._failed(mode, f"Failed to fetch and cache Circles users: {e}")

        verified = sum(1 for u in snapshot.users if u.is_verified)
        logger.info(
            "full_fetch_completed",
            total_count=snapshot.total_count,
            verified=verified,
            registered=snapshot.total_count - verified,
            pages=run.pages,
            duplicates_filtered=run.duplicates,
        )
        return IngestionResult(
            success=True,
            mode=mode,
            total_count=snapshot.total_count,
            new_count=snapshot.total_count,
            updated_count=0,
        )

    def run_incremental(
        self,
        *,
        batch_size: int | None = None,
        max_new_users: int | None = None,
    ) -> IngestionResult:
        """Resume from the stored cursor and merge into the cached snapshot."""
        mode = FetchMode.INCREMENTAL.value
        cursor_meta = self._cache.load_cursor()
        existing = self._cache.load_snapshot()
        if cursor_meta is None or existing is None or not existing.users:
            logger.info(
                "incremental_fallback_to_full",
                has_cursor=cursor_meta is not None,
                cached_users=len(existing.users) if existing else 0,
            )
            return self.run_full(batch_size=batch_size, max_users=max_new_users)

        cap = max_new_users if max_new_users is not None else self.config.max_new_users
        start = cursor_meta.cursor
        logger.info("incremental_fetch_started", cursor=start.position, cached_users=len(existing.users), max_new_users=cap)
        try:
            run = self._collect(
                start,
                batch_size or self.config.batch_size,
                cap=cap,
                existing_keys={u.key for u in existing.users},
            )
            self._transition(IngestionState.MERGING)
            outcome = merge_records(existing.users, run.records)
            now = self._now()
            snapshot = CacheSnapshot.build(outcome.users, now)
            self._persist(snapshot, run.last_processed or start, now)
        except (IngestionAborted, CacheStoreError) as e:
            return self._failed(mode, f"Failed to perform incremental Circles users update: {e}")
        except Exception as e:
            logger.exception("incremental_fetch_unexpected_error", error=str(e))
            return self._failed(mode, f"Failed to perform incremental Circles users update: {e}")

        logger.info(
            "incremental_fetch_completed",
            new_users=outcome.new_count,
            updated_users=outcome.updated_count,
            total_count=snapshot.total_count,
            pages=run.pages,
        )
        return IngestionResult(
            success=True,
            mode=mode,
            total_count=snapshot.total_count,
            new_count=outcome.new_count,
            updated_count=outcome.updated_count,
        )

    # -------------------------------------------------------------------------
    # Page loop
    # -------------------------------------------------------------------------

    def _collect(
        self,
        start: PaginationCursor | None,
        batch_size: int,
        *,
        cap: int | None,
        existing_keys: set[str] | None,
    ) -> CollectedRun:
        """
        Page through registrations from `start`. cap counts records whose key is
        not in existing_keys (all records when existing_keys is None).
        """
        max_empty = max(1, self.config.max_consecutive_empty)
        run = CollectedRun()
        seen: set[str] = set()
        cursor = start
        counted = 0
        misses = 0
        last_error: RemoteQueryError | None = None

        while cap is None or counted < cap:
            self._transition(IngestionState.FETCHING_PAGE)
            try:
                page = self._client.fetch_registrations(batch_size, cursor)
            except RemoteQueryError as e:
                misses += 1
                last_error = e
                logger.error("page_fetch_failed", attempt=misses, max_attempts=max_empty, error=str(e))
                if misses >= max_empty:
                    raise IngestionAborted(f"{misses} consecutive page failures, last: {e}") from e
                self._sleep(self.config.page_delay_sec)
                continue
            run.pages += 1

            added = 0
            hit_cap = False
            for i, event in enumerate(page.events):
                if cap is not None and counted >= cap:
                    hit_cap = True
                    break
                run.last_processed = event.cursor
                key = event.address.lower()
                if key in seen:
                    run.duplicates += 1
                    continue
                seen.add(key)
                self._transition(IngestionState.ENRICHING_ROW)
                run.records.append(self._enrich(event))
                added += 1
                if existing_keys is None or key not in existing_keys:
                    counted += 1
                if (i + 1) % PROGRESS_EVERY_ROWS == 0 or i == len(page.events) - 1:
                    logger.info("page_progress", processed=i + 1, page_rows=len(page.events))
                self._sleep(self.config.enrich_delay_sec)

            if added == 0:
                misses += 1
                logger.warning("empty_batch", consecutive=misses, max_consecutive=max_empty, page_rows=len(page.events))
                if misses >= max_empty:
                    if last_error is not None:
                        raise IngestionAborted(
                            f"{misses} consecutive pages without data, last failure: {last_error}"
                        ) from last_error
                    logger.info("pagination_stopped_empty_batches", consecutive=misses)
                    break
            else:
                misses = 0
                last_error = None
                logger.info(
                    "batch_collected",
                    page_rows=len(page.events),
                    added=added,
                    collected=len(run.records),
                )

            if hit_cap:
                break
            if page.events:
                if page.next_cursor is None:
                    logger.info("pagination_end_of_stream", collected=len(run.records))
                    break
                cursor = page.next_cursor
            self._sleep(self.config.page_delay_sec)

        if cap is not None and counted >= cap:
            logger.info("pagination_stopped_user_cap", cap=cap)
        return run

    def _enrich(self, event: RegistrationEvent) -> ParticipantRecord:
        counts = self._counter.count_trusts(event.address)
        verification = classify(counts.incoming, self.config.verification_threshold)
        return ParticipantRecord(
            address=event.address,
            incoming_trust_count=counts.incoming,
            outgoing_trust_count=counts.outgoing,
            is_verified=verification.verified,
            status=verification.status,
            timestamp=event.timestamp if event.timestamp is not None else self._now(),
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self, snapshot: CacheSnapshot, cursor: PaginationCursor | None, now: int) -> None:
        """Snapshot + meta must succeed; the cursor write is best effort."""
        self._cache.save_snapshot(snapshot)
        if cursor is not None:
            meta = CursorMeta.from_cursor(cursor, timestamp=now, users_count=snapshot.total_count)
            try:
                self._cache.save_cursor(meta)
                logger.info("cursor_stored", cursor=cursor.position, users_count=snapshot.total_count)
            except CacheStoreError as e:
                logger.warning("cursor_write_failed", cursor=cursor.position, error=str(e))
        self._transition(IngestionState.PERSISTED)

    def _failed(self, mode: str, message: str) -> IngestionResult:
        logger.error("refresh_failed", mode=mode, error=message)
        self._transition(IngestionState.IDLE)
        return IngestionResult(success=False, mode=mode, error=message)

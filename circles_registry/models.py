"""
Data models for the Circles user registry.

Cursor, cached participant record, snapshot, cache metadata, and the result
types returned to callers. All serialise to JSON-compatible dicts for the
cache store; timestamps are Unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

STATUS_VERIFIED = "verified"
STATUS_REGISTERED = "registered"


class FetchMode(str, Enum):
    """Refresh mode requested by callers. AUTO resolves to FULL or INCREMENTAL."""

    FULL = "full"
    INCREMENTAL = "incremental"
    AUTO = "auto"


@dataclass(frozen=True, order=True)
class PaginationCursor:
    """
    Position of an event in the indexer stream.

    Field order is the comparison order, so cursors compare lexicographically
    on (block_number, transaction_index, log_index). Pages are fetched
    newest-first, so each page's cursor is strictly less than the previous one.
    """

    block_number: int
    transaction_index: int
    log_index: int

    @property
    def position(self) -> str:
        return f"{self.block_number}:{self.transaction_index}:{self.log_index}"

    def to_dict(self) -> dict[str, int]:
        return {
            "block_number": self.block_number,
            "transaction_index": self.transaction_index,
            "log_index": self.log_index,
        }


@dataclass
class ParticipantRecord:
    """
    Cached view of one registered avatar.

    address keeps the casing the indexer returned; key is the case-folded
    identity used for dedup and lookups. timestamp is the registration event
    time the record was built from, not the time it was cached.
    """

    address: str
    incoming_trust_count: int
    outgoing_trust_count: int
    is_verified: bool
    status: str
    timestamp: int

    @property
    def key(self) -> str:
        return self.address.lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "incoming_trust_count": self.incoming_trust_count,
            "outgoing_trust_count": self.outgoing_trust_count,
            "is_verified": self.is_verified,
            "status": self.status,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParticipantRecord:
        incoming = int(data.get("incoming_trust_count") or 0)
        verified = bool(data.get("is_verified"))
        return cls(
            address=str(data["address"]),
            incoming_trust_count=incoming,
            outgoing_trust_count=int(data.get("outgoing_trust_count") or 0),
            is_verified=verified,
            status=str(data.get("status") or (STATUS_VERIFIED if verified else STATUS_REGISTERED)),
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass
class CacheSnapshot:
    """Full set of cached users. Written in one piece; total_count mirrors len(users)."""

    users: list[ParticipantRecord]
    total_count: int
    last_update: int

    @classmethod
    def build(cls, users: list[ParticipantRecord], now_ts: int) -> CacheSnapshot:
        return cls(users=list(users), total_count=len(users), last_update=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "users": [u.to_dict() for u in self.users],
            "total_count": self.total_count,
            "last_update": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheSnapshot:
        users = [ParticipantRecord.from_dict(u) for u in data.get("users") or []]
        return cls(
            users=users,
            total_count=len(users),
            last_update=int(data.get("last_update") or 0),
        )


@dataclass
class LastUpdateMeta:
    """When the snapshot was last written and how many users it held."""

    timestamp: int
    users_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "users_count": self.users_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LastUpdateMeta:
        return cls(
            timestamp=int(data.get("timestamp") or 0),
            users_count=int(data.get("users_count") or 0),
        )


@dataclass
class CursorMeta:
    """Persisted resumption cursor plus the record count and time it was stored."""

    block_number: int
    transaction_index: int
    log_index: int
    timestamp: int
    users_count: int

    @property
    def cursor(self) -> PaginationCursor:
        return PaginationCursor(self.block_number, self.transaction_index, self.log_index)

    @classmethod
    def from_cursor(cls, cursor: PaginationCursor, *, timestamp: int, users_count: int) -> CursorMeta:
        return cls(
            block_number=cursor.block_number,
            transaction_index=cursor.transaction_index,
            log_index=cursor.log_index,
            timestamp=timestamp,
            users_count=users_count,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = self.cursor.to_dict()
        out["timestamp"] = self.timestamp
        out["users_count"] = self.users_count
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CursorMeta:
        return cls(
            block_number=int(data["block_number"]),
            transaction_index=int(data["transaction_index"]),
            log_index=int(data["log_index"]),
            timestamp=int(data.get("timestamp") or 0),
            users_count=int(data.get("users_count") or 0),
        )


@dataclass(frozen=True)
class RegistrationEvent:
    """One normalised row of the registration query."""

    address: str
    timestamp: int | None
    cursor: PaginationCursor


@dataclass(frozen=True)
class TrustRelation:
    """One normalised row of the trust-relation query."""

    truster: str
    trustee: str
    timestamp: int | None = None

    @property
    def is_self_trust(self) -> bool:
        return self.truster.lower() == self.trustee.lower()


@dataclass
class IngestionResult:
    """Outcome of a refresh run."""

    success: bool
    mode: str
    total_count: int = 0
    new_count: int = 0
    updated_count: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode,
            "total_count": self.total_count,
            "new_count": self.new_count,
            "updated_count": self.updated_count,
            "error": self.error,
        }


@dataclass
class UserStatusCheck:
    """Point lookup result. found=False implies every other field is false/zero."""

    found: bool = False
    verified: bool = False
    registered: bool = False
    trust_count: int = 0
    needed_trusts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "verified": self.verified,
            "registered": self.registered,
            "trust_count": self.trust_count,
            "needed_trusts": self.needed_trusts,
        }


@dataclass
class CacheStatistics:
    """Summary of the cached snapshot, its age, and the stored cursor."""

    total_users: int = 0
    verified_users: int = 0
    registered_users: int = 0
    last_update: datetime | None = None
    cache_age: str = "unknown"
    cursor_position: str | None = None
    cursor_timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "total_users": self.total_users,
            "verified_users": self.verified_users,
            "registered_users": self.registered_users,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "cache_age": self.cache_age,
        }
        if self.cursor_position is not None:
            out["cursor_position"] = self.cursor_position
            out["cursor_timestamp"] = (
                self.cursor_timestamp.isoformat() if self.cursor_timestamp else None
            )
        return out


def ts_to_datetime(ts: int | float | None) -> datetime | None:
    """Unix seconds → aware UTC datetime; None passes through."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)

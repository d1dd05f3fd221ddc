"""
Trust counting for a single avatar.

Two TrustRelations queries per avatar (as trustee, as truster), each capped at
trust_query_limit rows. Counts above the cap are undercounted; a warning is
logged whenever a direction hits the cap. Self-trust rows never count.

Runs inline inside the bulk ingestion loop, so a failed lookup degrades to
zero counts instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass

from circles_registry.core.exceptions import RemoteQueryError
from circles_registry.query.client import CirclesQueryClient
from circles_registry.registry_logging import bind_address

DEFAULT_TRUST_QUERY_LIMIT = 1000


@dataclass(frozen=True)
class TrustCounts:
    incoming: int = 0
    outgoing: int = 0


class TrustCounter:
    """Counts incoming/outgoing trusts for avatars via the query client."""

    def __init__(self, client: CirclesQueryClient, *, limit: int = DEFAULT_TRUST_QUERY_LIMIT) -> None:
        self._client = client
        self._limit = limit

    def count_trusts(self, address: str) -> TrustCounts:
        log = bind_address(address)
        try:
            incoming = self._count_direction("trustee", address)
            outgoing = self._count_direction("truster", address)
        except RemoteQueryError as e:
            log.warning("trust_count_failed", error=str(e))
            return TrustCounts()
        return TrustCounts(incoming=incoming, outgoing=outgoing)

    def _count_direction(self, column: str, address: str) -> int:
        relations = self._client.fetch_trust_relations(column, address, self._limit)
        if len(relations) >= self._limit:
            bind_address(address).warning(
                "trust_count_capped",
                direction="incoming" if column == "trustee" else "outgoing",
                limit=self._limit,
            )
        return sum(1 for r in relations if not r.is_self_trust)

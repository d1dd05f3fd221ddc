"""
Circles indexer client: JSON-RPC transport, row normalisation, paginated queries.

The indexer answers `circles_query` with {columns, rows}, where rows are either
positional arrays (zipped against columns) or pre-keyed objects, and the key
casing varies ("columns"/"Columns", "rows"/"Rows"). Everything is normalised
here into list[dict] and then into typed rows; nothing downstream sees raw
remote shapes.

Pagination is newest-first over (blockNumber, transactionIndex, logIndex).
next_cursor is the last row's triple, or None when the page came back short
(end of stream).
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import requests

from circles_registry.config.env import DEFAULT_QUERY_NAMESPACE, mask_url
from circles_registry.core.exceptions import RemoteQueryError
from circles_registry.models import PaginationCursor, RegistrationEvent, TrustRelation
from circles_registry.query.filters import (
    COL_BLOCK_NUMBER,
    COL_LOG_INDEX,
    COL_TRANSACTION_INDEX,
    EVENT_ORDER_DESC,
    Predicate,
    QueryRequest,
    cursor_filter,
    equals,
)
from circles_registry.registry_logging import get_logger

logger = get_logger(__name__)

RPC_METHOD = "circles_query"
AVATARS_TABLE = "Avatars"
TRUST_RELATIONS_TABLE = "TrustRelations"
REGISTER_HUMAN_TYPE = "CrcV2_RegisterHuman"
TRUST_COLUMNS = ("truster", "trustee", "timestamp")

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
RETRY_DELAY_SEC = 2.0


class QueryTransport(Protocol):
    """Anything that can execute one circles_query request dict and return the raw result."""

    def query(self, request: dict[str, Any]) -> Any: ...


class CirclesRpcTransport:
    """
    JSON-RPC 2.0 over HTTP POST with requests.

    429 responses wait RETRY_DELAY_SEC and retry; connection errors retry the
    same way. Everything else that goes wrong raises RemoteQueryError.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_sec: float = RETRY_DELAY_SEC,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._retry_delay_sec = retry_delay_sec
        self._session = session or requests.Session()
        self._sleep = sleep
        self._ids = itertools.count(1)

    def query(self, request: dict[str, Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": RPC_METHOD,
            "params": [request],
        }
        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            try:
                r = self._session.post(self._url, json=payload, timeout=self._timeout)
            except requests.RequestException as e:
                logger.warning(
                    "rpc_request_error",
                    url=mask_url(self._url),
                    attempt=attempt + 1,
                    error=str(e),
                )
                if not last_attempt:
                    self._sleep(self._retry_delay_sec)
                    continue
                raise RemoteQueryError(f"circles_query request failed: {e}", method=RPC_METHOD) from e
            if r.status_code == 429:
                logger.warning("rpc_rate_limited", attempt=attempt + 1, wait_sec=self._retry_delay_sec)
                if not last_attempt:
                    self._sleep(self._retry_delay_sec)
                continue
            try:
                r.raise_for_status()
            except requests.HTTPError as e:
                raise RemoteQueryError(
                    f"circles_query HTTP {r.status_code}",
                    method=RPC_METHOD,
                    status_code=r.status_code,
                ) from e
            try:
                data = r.json()
            except ValueError as e:
                raise RemoteQueryError("circles_query returned invalid JSON", method=RPC_METHOD) from e
            if not isinstance(data, dict):
                raise RemoteQueryError("circles_query returned a non-object body", method=RPC_METHOD)
            err = data.get("error")
            if err:
                raise RemoteQueryError(f"circles_query RPC error: {err}", method=RPC_METHOD)
            return data.get("result")
        raise RemoteQueryError(
            f"circles_query rate limited after {self._max_retries} attempts",
            method=RPC_METHOD,
            status_code=429,
        )


def normalize_rows(payload: Any) -> list[dict[str, Any]]:
    """
    Turn any indexer result shape into a list of row dicts.

    Accepts {"result": ...} wrappers, columns/Columns + rows/Rows with array or
    object rows, or a bare list of object rows. Raises RemoteQueryError otherwise.
    """
    result = payload
    if isinstance(result, dict):
        for wrapper in ("result", "Result"):
            if wrapper in result and isinstance(result[wrapper], (dict, list)):
                result = result[wrapper]
                break
    if result is None:
        return []
    if isinstance(result, list):
        rows: Any = result
        columns: Any = []
    elif isinstance(result, dict):
        rows = result.get("rows") if "rows" in result else result.get("Rows")
        columns = result.get("columns") if "columns" in result else result.get("Columns")
    else:
        raise RemoteQueryError(f"Unexpected query result type: {type(result).__name__}")
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise RemoteQueryError("Query result rows is not a list")
    columns = list(columns or [])

    out: list[dict[str, Any]] = []
    for row in rows:
        if isinstance(row, dict):
            out.append(dict(row))
        elif isinstance(row, (list, tuple)):
            if len(columns) < len(row):
                raise RemoteQueryError(
                    f"Array row has {len(row)} values but only {len(columns)} columns"
                )
            out.append(dict(zip(columns, row)))
        else:
            raise RemoteQueryError(f"Unexpected row type: {type(row).__name__}")
    return out


def _as_int(value: Any, column: str) -> int:
    if isinstance(value, bool):
        raise RemoteQueryError(f"Column {column} is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RemoteQueryError(f"Column {column} is not an integer: {value!r}") from e


def cursor_from_row(row: dict[str, Any]) -> PaginationCursor:
    """Read the (block, tx, log) triple off a row; RemoteQueryError when missing."""
    return PaginationCursor(
        block_number=_as_int(row.get(COL_BLOCK_NUMBER), COL_BLOCK_NUMBER),
        transaction_index=_as_int(row.get(COL_TRANSACTION_INDEX), COL_TRANSACTION_INDEX),
        log_index=_as_int(row.get(COL_LOG_INDEX), COL_LOG_INDEX),
    )


def _optional_ts(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def registration_from_row(row: dict[str, Any]) -> RegistrationEvent:
    avatar = row.get("avatar")
    if not isinstance(avatar, str) or not avatar.strip():
        raise RemoteQueryError(f"Registration row without avatar: {row!r}")
    return RegistrationEvent(
        address=avatar.strip(),
        timestamp=_optional_ts(row.get("timestamp")),
        cursor=cursor_from_row(row),
    )


def trust_relation_from_row(row: dict[str, Any]) -> TrustRelation:
    truster = row.get("truster")
    trustee = row.get("trustee")
    if not isinstance(truster, str) or not isinstance(trustee, str):
        raise RemoteQueryError(f"Trust row without truster/trustee: {row!r}")
    return TrustRelation(truster=truster, trustee=trustee, timestamp=_optional_ts(row.get("timestamp")))


@dataclass
class QueryPage:
    """Normalised rows of one page plus the cursor for the next one (None at end of stream)."""

    rows: list[dict[str, Any]]
    next_cursor: PaginationCursor | None


@dataclass
class RegistrationPage:
    events: list[RegistrationEvent]
    next_cursor: PaginationCursor | None


class CirclesQueryClient:
    """Typed queries against the Circles indexer on top of a QueryTransport."""

    def __init__(self, transport: QueryTransport, *, namespace: str = DEFAULT_QUERY_NAMESPACE) -> None:
        self._transport = transport
        self._namespace = namespace

    def query(self, request: QueryRequest) -> list[dict[str, Any]]:
        """Run one request and return normalised rows."""
        try:
            raw = self._transport.query(request.to_wire())
        except RemoteQueryError:
            raise
        except requests.RequestException as e:
            raise RemoteQueryError(f"{request.table} query failed: {e}", method=RPC_METHOD) from e
        return normalize_rows(raw)

    def fetch_page(
        self,
        table: str,
        filters: tuple[Predicate, ...],
        limit: int,
        cursor: PaginationCursor | None = None,
        columns: tuple[str, ...] = (),
    ) -> QueryPage:
        """
        One newest-first page of `table` matching `filters`, strictly older than
        `cursor` when given.
        """
        if limit <= 0:
            raise ValueError("limit must be positive")
        all_filters = filters + (cursor_filter(cursor),) if cursor else filters
        request = QueryRequest(
            namespace=self._namespace,
            table=table,
            columns=columns,
            filters=all_filters,
            order=EVENT_ORDER_DESC,
            limit=limit,
        )
        rows = self.query(request)
        next_cursor = cursor_from_row(rows[-1]) if rows and len(rows) >= limit else None
        return QueryPage(rows=rows, next_cursor=next_cursor)

    def fetch_registrations(
        self,
        limit: int,
        cursor: PaginationCursor | None = None,
    ) -> RegistrationPage:
        """One page of human registration events."""
        logger.info(
            "registrations_query",
            limit=limit,
            after=cursor.position if cursor else "beginning",
        )
        page = self.fetch_page(
            AVATARS_TABLE,
            (equals("type", REGISTER_HUMAN_TYPE),),
            limit,
            cursor,
        )
        events = [registration_from_row(r) for r in page.rows]
        return RegistrationPage(events=events, next_cursor=page.next_cursor)

    def fetch_trust_relations(self, column: str, address: str, limit: int) -> list[TrustRelation]:
        """Trust relations where `column` (truster or trustee) equals address; at most `limit` rows."""
        request = QueryRequest(
            namespace=self._namespace,
            table=TRUST_RELATIONS_TABLE,
            columns=TRUST_COLUMNS,
            filters=(equals(column, address),),
            limit=limit,
        )
        return [trust_relation_from_row(r) for r in self.query(request)]

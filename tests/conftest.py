"""
Pytest fixtures for Circles Registry tests.

FakeCirclesEndpoint stands in for the indexer behind CirclesQueryClient: it
evaluates the wire-format predicate tree, ordering and limit over in-memory
Avatars / TrustRelations rows, and can be scripted to fail or return empty
pages. Engines and services are built with zero delays and a fixed clock.
"""

from __future__ import annotations

from typing import Any

import pytest

from circles_registry.cache.store import InMemoryCacheStore
from circles_registry.core.exceptions import RemoteQueryError
from circles_registry.ingestion.engine import IngestionConfig
from circles_registry.query.client import (
    AVATARS_TABLE,
    REGISTER_HUMAN_TYPE,
    TRUST_RELATIONS_TABLE,
    CirclesQueryClient,
)
from circles_registry.service import CirclesUsersService

NOW = 1_700_000_000
AVATAR_COLUMNS = ["blockNumber", "transactionIndex", "logIndex", "timestamp", "avatar", "type"]
EMPTY_PAGE = "empty"


def addr(i: int) -> str:
    """Deterministic 0x address for index i."""
    return "0x" + format(i, "040x")


def wire_matches(node: dict[str, Any], row: dict[str, Any]) -> bool:
    """Evaluate one wire-format filter node against a row, the way the indexer does."""
    if node["Type"] == "Conjunction":
        results = (wire_matches(p, row) for p in node["Predicates"])
        return all(results) if node["ConjunctionType"] == "And" else any(results)
    actual = row.get(node["Column"])
    kind = node["FilterType"]
    if kind == "IsNull":
        return actual is None
    if kind == "IsNotNull":
        return actual is not None
    value = node.get("Value")
    if kind == "Equals":
        return actual == value
    if kind == "NotEquals":
        return actual != value
    if actual is None:
        return False
    if kind == "GreaterThan":
        return actual > value
    if kind == "LessThan":
        return actual < value
    raise AssertionError(f"unknown filter type {kind}")


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCirclesEndpoint:
    """
    In-memory circles_query endpoint (implements QueryTransport).

    avatar_script: consumed one entry per Avatars query. An Exception instance
    is raised, EMPTY_PAGE returns no rows, None answers normally.
    """

    def __init__(self) -> None:
        self.avatars: list[dict[str, Any]] = []
        self.trusts: list[dict[str, Any]] = []
        self.avatar_script: list[Any] = []
        self.requests: list[dict[str, Any]] = []

    def add_avatar(
        self,
        address: str,
        block: int,
        tx: int = 0,
        log: int = 0,
        timestamp: int | None = None,
        kind: str = REGISTER_HUMAN_TYPE,
    ) -> None:
        self.avatars.append({
            "blockNumber": block,
            "transactionIndex": tx,
            "logIndex": log,
            "timestamp": NOW - 86400 if timestamp is None else timestamp,
            "avatar": address,
            "type": kind,
        })

    def add_trust(self, truster: str, trustee: str) -> None:
        self.trusts.append({"truster": truster, "trustee": trustee, "timestamp": NOW - 3600})

    def set_incoming(self, address: str, count: int) -> None:
        """Replace trusts into `address` with `count` distinct trusters."""
        self.trusts = [t for t in self.trusts if t["trustee"] != address]
        base = 0xF000_0000 + len(self.trusts) * 1000
        for j in range(count):
            self.add_trust(addr(base + j), address)

    def avatar_queries(self) -> list[dict[str, Any]]:
        return [r for r in self.requests if r["Table"] == AVATARS_TABLE]

    def query(self, request: dict[str, Any]) -> Any:
        self.requests.append(request)
        table = request["Table"]
        if table == AVATARS_TABLE:
            step = self.avatar_script.pop(0) if self.avatar_script else None
            if isinstance(step, Exception):
                raise step
            if step == EMPTY_PAGE:
                return {"columns": AVATAR_COLUMNS, "rows": []}
            rows = self._select(self.avatars, request)
            return {
                "columns": AVATAR_COLUMNS,
                "rows": [[r[c] for c in AVATAR_COLUMNS] for r in rows],
            }
        if table == TRUST_RELATIONS_TABLE:
            rows = self._select(self.trusts, request)
            columns = request.get("Columns") or ["truster", "trustee", "timestamp"]
            return {"Columns": columns, "Rows": [{c: r.get(c) for c in columns} for r in rows]}
        raise RemoteQueryError(f"unknown table {table}")

    @staticmethod
    def _select(source: list[dict[str, Any]], request: dict[str, Any]) -> list[dict[str, Any]]:
        rows = [r for r in source if all(wire_matches(f, r) for f in request.get("Filter", []))]
        for order in reversed(request.get("Order", [])):
            rows.sort(key=lambda r: r[order["Column"]], reverse=order["SortOrder"] == "DESC")
        limit = request.get("Limit")
        return rows[:limit] if limit is not None else rows


def zero_delay_config(**overrides: Any) -> IngestionConfig:
    values: dict[str, Any] = {"enrich_delay_sec": 0.0, "page_delay_sec": 0.0}
    values.update(overrides)
    return IngestionConfig(**values)


@pytest.fixture
def endpoint():
    return FakeCirclesEndpoint()


@pytest.fixture
def query_client(endpoint):
    return CirclesQueryClient(endpoint, namespace="V_CrcV2")


@pytest.fixture
def store():
    return InMemoryCacheStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_service(query_client, store, clock):
    """Factory: CirclesUsersService over the fake endpoint and in-memory store."""

    def _make(**config_overrides: Any) -> CirclesUsersService:
        return CirclesUsersService.create(
            query_client,
            store,
            ingestion_config=zero_delay_config(**config_overrides),
            sleep=lambda _s: None,
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def sql_store(tmp_path, monkeypatch):
    """SqlCacheStore on a temporary SQLite file. Unset CACHE_DB_URL/DATABASE_URL so nothing leaks in."""
    monkeypatch.delenv("CACHE_DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    from circles_registry.cache.store import SqlCacheStore

    s = SqlCacheStore(f"sqlite:///{tmp_path / 'cache.db'}")
    s.init_db()
    yield s
    s.dispose()


@pytest.fixture
def api_client(service):
    """FastAPI TestClient with the service dependency pointed at the fake-backed service."""
    from fastapi.testclient import TestClient

    from circles_registry.api_server.server import app, get_service

    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_service, None)

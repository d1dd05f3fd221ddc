"""
Tests for the indexer client: row normalisation, JSON-RPC transport (requests
mocked), and newest-first pagination against the fake endpoint.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from circles_registry.core.exceptions import RemoteQueryError
from circles_registry.models import PaginationCursor
from circles_registry.query.client import (
    CirclesQueryClient,
    CirclesRpcTransport,
    normalize_rows,
    registration_from_row,
)

from conftest import addr


# -----------------------------------------------------------------------------
# normalize_rows
# -----------------------------------------------------------------------------


def test_normalize_array_rows():
    rows = normalize_rows({"columns": ["a", "b"], "rows": [[1, 2], [3, 4]]})
    assert rows == [{"a": 1, "b": 2}, {"a": 3, "b": 4}]


def test_normalize_capitalised_keys_and_object_rows():
    rows = normalize_rows({"Columns": ["a"], "Rows": [{"a": 1}]})
    assert rows == [{"a": 1}]


def test_normalize_result_wrapper_and_bare_list():
    assert normalize_rows({"result": {"columns": ["x"], "rows": [[7]]}}) == [{"x": 7}]
    assert normalize_rows([{"x": 1}, {"x": 2}]) == [{"x": 1}, {"x": 2}]


def test_normalize_empty_results():
    assert normalize_rows(None) == []
    assert normalize_rows({"columns": ["x"], "rows": []}) == []
    assert normalize_rows({"columns": ["x"]}) == []


def test_normalize_bad_shapes_raise():
    with pytest.raises(RemoteQueryError):
        normalize_rows("not rows")
    with pytest.raises(RemoteQueryError):
        normalize_rows({"columns": ["a"], "rows": "nope"})
    with pytest.raises(RemoteQueryError):
        normalize_rows({"columns": ["a"], "rows": [[1, 2]]})
    with pytest.raises(RemoteQueryError):
        normalize_rows({"columns": ["a"], "rows": [42]})


def test_registration_row_requires_avatar_and_cursor():
    good = {"avatar": addr(1), "timestamp": "1700", "blockNumber": "5", "transactionIndex": 1, "logIndex": 0}
    event = registration_from_row(good)
    assert event.timestamp == 1700
    assert event.cursor == PaginationCursor(5, 1, 0)
    with pytest.raises(RemoteQueryError):
        registration_from_row({**good, "avatar": None})
    with pytest.raises(RemoteQueryError):
        registration_from_row({**good, "blockNumber": None})


# -----------------------------------------------------------------------------
# CirclesRpcTransport (requests mocked)
# -----------------------------------------------------------------------------


def _response(status=200, body=None, json_error=False):
    r = MagicMock()
    r.status_code = status
    if json_error:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = body
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return r


def _transport(session, **kwargs):
    sleeps = []
    t = CirclesRpcTransport("https://rpc.example/", session=session, sleep=sleeps.append, **kwargs)
    return t, sleeps


def test_transport_posts_circles_query_payload():
    session = MagicMock()
    session.post.return_value = _response(body={"jsonrpc": "2.0", "id": 1, "result": {"columns": [], "rows": []}})
    t, _ = _transport(session, timeout=5.0)
    result = t.query({"Table": "Avatars"})
    assert result == {"columns": [], "rows": []}
    args, kwargs = session.post.call_args
    assert args[0] == "https://rpc.example/"
    assert kwargs["timeout"] == 5.0
    assert kwargs["json"]["method"] == "circles_query"
    assert kwargs["json"]["params"] == [{"Table": "Avatars"}]
    assert kwargs["json"]["jsonrpc"] == "2.0"


def test_transport_retries_after_rate_limit():
    session = MagicMock()
    session.post.side_effect = [
        _response(status=429),
        _response(body={"result": {"rows": []}}),
    ]
    t, sleeps = _transport(session, max_retries=3, retry_delay_sec=2.0)
    assert t.query({}) == {"rows": []}
    assert session.post.call_count == 2
    assert sleeps == [2.0]


def test_transport_rate_limited_every_attempt():
    session = MagicMock()
    session.post.return_value = _response(status=429)
    t, _ = _transport(session, max_retries=2)
    with pytest.raises(RemoteQueryError) as exc:
        t.query({})
    assert exc.value.status_code == 429
    assert session.post.call_count == 2


def test_transport_http_error():
    session = MagicMock()
    session.post.return_value = _response(status=500)
    t, _ = _transport(session)
    with pytest.raises(RemoteQueryError) as exc:
        t.query({})
    assert exc.value.status_code == 500
    assert session.post.call_count == 1


def test_transport_rpc_error_and_invalid_json():
    session = MagicMock()
    session.post.return_value = _response(body={"error": {"code": -32000, "message": "bad filter"}})
    t, _ = _transport(session)
    with pytest.raises(RemoteQueryError, match="RPC error"):
        t.query({})

    session.post.return_value = _response(json_error=True)
    with pytest.raises(RemoteQueryError, match="invalid JSON"):
        t.query({})


def test_transport_connection_errors_exhaust_retries():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    t, sleeps = _transport(session, max_retries=3, retry_delay_sec=1.0)
    with pytest.raises(RemoteQueryError, match="request failed"):
        t.query({})
    assert session.post.call_count == 3
    assert sleeps == [1.0, 1.0]


# -----------------------------------------------------------------------------
# CirclesQueryClient pagination
# -----------------------------------------------------------------------------


def test_fetch_registrations_newest_first_with_next_cursor(endpoint, query_client):
    for i in range(5):
        endpoint.add_avatar(addr(i), block=100 + i)
    page = query_client.fetch_registrations(3)
    assert [e.address for e in page.events] == [addr(4), addr(3), addr(2)]
    assert page.next_cursor == PaginationCursor(102, 0, 0)

    page2 = query_client.fetch_registrations(3, page.next_cursor)
    assert [e.address for e in page2.events] == [addr(1), addr(0)]
    # short page: end of stream
    assert page2.next_cursor is None


def test_fetch_registrations_only_human_registrations(endpoint, query_client):
    endpoint.add_avatar(addr(1), block=10)
    endpoint.add_avatar(addr(2), block=11, kind="CrcV2_RegisterGroup")
    page = query_client.fetch_registrations(10)
    assert [e.address for e in page.events] == [addr(1)]
    wire = endpoint.avatar_queries()[0]
    assert wire["Namespace"] == "V_CrcV2"
    assert wire["Filter"][0]["Value"] == "CrcV2_RegisterHuman"


def test_fetch_page_rejects_non_positive_limit(query_client):
    with pytest.raises(ValueError):
        query_client.fetch_registrations(0)


def test_fetch_trust_relations(endpoint, query_client):
    endpoint.add_trust(addr(1), addr(2))
    endpoint.add_trust(addr(3), addr(2))
    endpoint.add_trust(addr(2), addr(1))
    incoming = query_client.fetch_trust_relations("trustee", addr(2), 1000)
    assert sorted(r.truster for r in incoming) == [addr(1), addr(3)]
    outgoing = query_client.fetch_trust_relations("truster", addr(2), 1000)
    assert [r.trustee for r in outgoing] == [addr(1)]


def test_client_wraps_request_exceptions():
    transport = MagicMock()
    transport.query.side_effect = requests.Timeout("slow")
    client = CirclesQueryClient(transport)
    with pytest.raises(RemoteQueryError):
        client.fetch_registrations(10)

"""
Tests for the circles_query predicate tree: wire format, and how the indexer
evaluates it, including the cursor continuation filter.
"""

from __future__ import annotations

import pytest

from circles_registry.models import PaginationCursor
from circles_registry.query.filters import (
    EVENT_ORDER_DESC,
    FilterPredicate,
    QueryRequest,
    and_,
    cursor_filter,
    equals,
    greater_than,
    is_not_null,
    is_null,
    not_equals,
    or_,
)

from conftest import wire_matches


def _row(block, tx, log):
    return {"blockNumber": block, "transactionIndex": tx, "logIndex": log}


def _matches(pred, row):
    return wire_matches(pred.to_wire(), row)


def test_leaf_to_wire():
    assert equals("type", "CrcV2_RegisterHuman").to_wire() == {
        "Type": "FilterPredicate",
        "FilterType": "Equals",
        "Column": "type",
        "Value": "CrcV2_RegisterHuman",
    }


def test_null_checks_have_no_value():
    wire = is_null("avatar").to_wire()
    assert "Value" not in wire
    assert wire["FilterType"] == "IsNull"
    assert is_not_null("avatar").to_wire()["FilterType"] == "IsNotNull"


def test_unknown_filter_type_rejected():
    with pytest.raises(ValueError, match="Unknown filter type"):
        FilterPredicate("Between", "blockNumber", 1)


def test_conjunction_to_wire_nests():
    wire = or_(equals("a", 1), and_(equals("b", 2), not_equals("c", 3))).to_wire()
    assert wire["Type"] == "Conjunction"
    assert wire["ConjunctionType"] == "Or"
    assert wire["Predicates"][1]["ConjunctionType"] == "And"
    assert wire["Predicates"][1]["Predicates"][1]["FilterType"] == "NotEquals"


def test_leaf_matches():
    row = {"a": 5, "b": None}
    assert _matches(equals("a", 5), row)
    assert not _matches(not_equals("a", 5), row)
    assert _matches(greater_than("a", 4), row)
    assert not _matches(greater_than("b", 4), row)
    assert _matches(is_null("b"), row)
    assert _matches(is_null("missing"), row)
    assert _matches(is_not_null("a"), row)


def test_cursor_filter_is_strictly_older():
    f = cursor_filter(PaginationCursor(100, 5, 3))
    assert _matches(f, _row(99, 9, 9))
    assert _matches(f, _row(100, 4, 9))
    assert _matches(f, _row(100, 5, 2))
    assert not _matches(f, _row(100, 5, 3))
    assert not _matches(f, _row(100, 5, 4))
    assert not _matches(f, _row(100, 6, 0))
    assert not _matches(f, _row(101, 0, 0))


def test_cursor_filter_agrees_with_cursor_ordering():
    """Matching the filter is the same as comparing PaginationCursor tuples."""
    c = PaginationCursor(10, 1, 1)
    f = cursor_filter(c)
    for block in (9, 10, 11):
        for tx in (0, 1, 2):
            for log in (0, 1, 2):
                assert _matches(f, _row(block, tx, log)) == (PaginationCursor(block, tx, log) < c)


def test_query_request_to_wire():
    req = QueryRequest(
        namespace="V_CrcV2",
        table="Avatars",
        filters=(equals("type", "CrcV2_RegisterHuman"),),
        order=EVENT_ORDER_DESC,
        limit=1000,
    )
    wire = req.to_wire()
    assert wire["Namespace"] == "V_CrcV2"
    assert wire["Table"] == "Avatars"
    assert wire["Columns"] == []
    assert wire["Limit"] == 1000
    assert "Offset" not in wire
    assert [o["Column"] for o in wire["Order"]] == ["blockNumber", "transactionIndex", "logIndex"]
    assert all(o["SortOrder"] == "DESC" for o in wire["Order"])
    assert len(wire["Filter"]) == 1


def test_query_request_filters_are_anded():
    req = QueryRequest(
        namespace="ns",
        table="t",
        filters=(equals("type", "x"), cursor_filter(PaginationCursor(10, 0, 0))),
    )
    wire_filters = req.to_wire()["Filter"]
    assert all(wire_matches(w, {"type": "x", **_row(9, 0, 0)}) for w in wire_filters)
    assert not all(wire_matches(w, {"type": "y", **_row(9, 0, 0)}) for w in wire_filters)
    assert not all(wire_matches(w, {"type": "x", **_row(10, 0, 0)}) for w in wire_filters)

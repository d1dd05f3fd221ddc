"""
Predicate tree and request shape for the Circles `circles_query` RPC.

FilterPredicate leaves (Equals, NotEquals, GreaterThan, LessThan, IsNull,
IsNotNull) and And/Or Conjunctions render to the indexer's wire format via
to_wire(); the indexer evaluates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from circles_registry.models import PaginationCursor

EQUALS = "Equals"
NOT_EQUALS = "NotEquals"
GREATER_THAN = "GreaterThan"
LESS_THAN = "LessThan"
IS_NULL = "IsNull"
IS_NOT_NULL = "IsNotNull"
FILTER_TYPES = (EQUALS, NOT_EQUALS, GREATER_THAN, LESS_THAN, IS_NULL, IS_NOT_NULL)

AND = "And"
OR = "Or"

ASC = "ASC"
DESC = "DESC"

COL_BLOCK_NUMBER = "blockNumber"
COL_TRANSACTION_INDEX = "transactionIndex"
COL_LOG_INDEX = "logIndex"


@dataclass(frozen=True)
class FilterPredicate:
    """Leaf comparison on one column."""

    filter_type: str
    column: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.filter_type not in FILTER_TYPES:
            raise ValueError(f"Unknown filter type: {self.filter_type}")

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "Type": "FilterPredicate",
            "FilterType": self.filter_type,
            "Column": self.column,
        }
        if self.filter_type not in (IS_NULL, IS_NOT_NULL):
            out["Value"] = self.value
        return out


@dataclass(frozen=True)
class Conjunction:
    """And/Or over child predicates."""

    conjunction_type: str
    predicates: tuple[Predicate, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.conjunction_type not in (AND, OR):
            raise ValueError(f"Unknown conjunction type: {self.conjunction_type}")

    def to_wire(self) -> dict[str, Any]:
        return {
            "Type": "Conjunction",
            "ConjunctionType": self.conjunction_type,
            "Predicates": [p.to_wire() for p in self.predicates],
        }


Predicate = Union[FilterPredicate, Conjunction]


def equals(column: str, value: Any) -> FilterPredicate:
    return FilterPredicate(EQUALS, column, value)


def not_equals(column: str, value: Any) -> FilterPredicate:
    return FilterPredicate(NOT_EQUALS, column, value)


def greater_than(column: str, value: Any) -> FilterPredicate:
    return FilterPredicate(GREATER_THAN, column, value)


def less_than(column: str, value: Any) -> FilterPredicate:
    return FilterPredicate(LESS_THAN, column, value)


def is_null(column: str) -> FilterPredicate:
    return FilterPredicate(IS_NULL, column)


def is_not_null(column: str) -> FilterPredicate:
    return FilterPredicate(IS_NOT_NULL, column)


def and_(*predicates: Predicate) -> Conjunction:
    return Conjunction(AND, tuple(predicates))


def or_(*predicates: Predicate) -> Conjunction:
    return Conjunction(OR, tuple(predicates))


@dataclass(frozen=True)
class OrderBy:
    column: str
    sort_order: str = DESC

    def to_wire(self) -> dict[str, str]:
        return {"Column": self.column, "SortOrder": self.sort_order}


# Newest event first; the cursor filter below relies on this order.
EVENT_ORDER_DESC: tuple[OrderBy, ...] = (
    OrderBy(COL_BLOCK_NUMBER, DESC),
    OrderBy(COL_TRANSACTION_INDEX, DESC),
    OrderBy(COL_LOG_INDEX, DESC),
)


def cursor_filter(cursor: PaginationCursor) -> Conjunction:
    """
    Rows strictly older than cursor under the descending (block, tx, log) order:

        block < c.block
        OR (block == c.block AND tx < c.tx)
        OR (block == c.block AND tx == c.tx AND log < c.log)
    """
    return or_(
        less_than(COL_BLOCK_NUMBER, cursor.block_number),
        and_(
            equals(COL_BLOCK_NUMBER, cursor.block_number),
            less_than(COL_TRANSACTION_INDEX, cursor.transaction_index),
        ),
        and_(
            equals(COL_BLOCK_NUMBER, cursor.block_number),
            equals(COL_TRANSACTION_INDEX, cursor.transaction_index),
            less_than(COL_LOG_INDEX, cursor.log_index),
        ),
    )


@dataclass(frozen=True)
class QueryRequest:
    """One `circles_query` call. Top-level filters are implicitly ANDed by the indexer."""

    namespace: str
    table: str
    columns: tuple[str, ...] = ()
    filters: tuple[Predicate, ...] = ()
    order: tuple[OrderBy, ...] = ()
    limit: int | None = None
    offset: int | None = None

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "Namespace": self.namespace,
            "Table": self.table,
            "Columns": list(self.columns),
        }
        if self.filters:
            out["Filter"] = [p.to_wire() for p in self.filters]
        if self.order:
            out["Order"] = [o.to_wire() for o in self.order]
        if self.limit is not None:
            out["Limit"] = self.limit
        if self.offset is not None:
            out["Offset"] = self.offset
        return out

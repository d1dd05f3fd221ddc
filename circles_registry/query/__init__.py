# Circles indexer queries: predicate tree, JSON-RPC transport, paginated client.

from circles_registry.query.client import (
    CirclesQueryClient,
    CirclesRpcTransport,
    QueryPage,
    QueryTransport,
    RegistrationPage,
    normalize_rows,
)
from circles_registry.query.filters import (
    Conjunction,
    FilterPredicate,
    OrderBy,
    QueryRequest,
    cursor_filter,
)

__all__ = [
    "CirclesQueryClient",
    "CirclesRpcTransport",
    "Conjunction",
    "FilterPredicate",
    "OrderBy",
    "QueryPage",
    "QueryRequest",
    "QueryTransport",
    "RegistrationPage",
    "cursor_filter",
    "normalize_rows",
]

"""
API server package: HTTP interface to the registry.

Exposes status lookups, cached users, statistics and refresh control.
Delegates to CirclesUsersService; never talks to the indexer except via refresh.
"""

"""
Circles Registry: verified-user cache for the Circles trust network.

Pages registration events out of the Circles indexer, counts incoming and
outgoing trusts per avatar, classifies verification status, and keeps a cached
snapshot that callers query for "is this address verified enough". Modular
layout with clear separation between query client, trust counting, cache
store, ingestion engine, status lookup, API server, and tools.
"""

__version__ = "0.1.0"

"""
Core: cross-cutting concerns shared by query client, cache, and ingestion.

Holds the exception taxonomy used for error propagation between layers.
"""

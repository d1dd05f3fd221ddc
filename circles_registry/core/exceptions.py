"""
Application-level exceptions.

RemoteQueryError covers anything that goes wrong talking to the Circles indexer
(transport, HTTP status, JSON-RPC error, unparseable rows). CacheStoreError
covers persistence failures. IngestionAborted is raised inside the engine when
page fetches keep failing and is turned into a failed IngestionResult.
"""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for all Circles Registry errors."""


class RemoteQueryError(RegistryError):
    """Transport or parse failure on a remote query."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.status_code = status_code


class CacheStoreError(RegistryError):
    """Failure reading or writing the cache store."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class IngestionAborted(RegistryError):
    """Too many consecutive page failures; the run is abandoned without writing."""

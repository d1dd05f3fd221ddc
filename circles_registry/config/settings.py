"""
Application settings for Circles Registry.

Built from environment variables (and .env via config.env) into a typed,
immutable Settings object shared by the service, API server, and tools.
"""

from __future__ import annotations

from dataclasses import dataclass

from circles_registry.config.env import (
    DEFAULT_CACHE_NAMESPACE,
    DEFAULT_QUERY_NAMESPACE,
    env_float,
    env_int,
    env_str,
    get_cache_db_url,
    get_rpc_url,
    load_registry_env,
)

SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the registry."""

    rpc_url: str
    query_namespace: str = DEFAULT_QUERY_NAMESPACE
    cache_namespace: str = DEFAULT_CACHE_NAMESPACE
    cache_db_url: str = "sqlite:///circles_cache.db"
    verification_threshold: int = 3
    update_interval_sec: float = 24 * SECONDS_PER_HOUR
    batch_size: int = 1000
    max_users: int = 10_000
    trust_query_limit: int = 1000
    enrich_delay_sec: float = 0.02
    page_delay_sec: float = 0.1
    request_timeout_sec: float = 30.0
    max_retries: int = 3
    refresh_check_interval_sec: float = float(SECONDS_PER_HOUR)
    api_host: str = "0.0.0.0"
    api_port: int = 8000


def load_settings() -> Settings:
    """Read Settings from the environment. Always re-reads; see get_settings() for the cached copy."""
    load_registry_env()
    return Settings(
        rpc_url=get_rpc_url(),
        query_namespace=env_str("CIRCLES_NAMESPACE", DEFAULT_QUERY_NAMESPACE),
        cache_namespace=env_str("CIRCLES_CACHE_NAMESPACE", DEFAULT_CACHE_NAMESPACE),
        cache_db_url=get_cache_db_url(),
        verification_threshold=env_int("CIRCLES_VERIFICATION_THRESHOLD", 3),
        update_interval_sec=env_float("CIRCLES_UPDATE_INTERVAL_HOURS", 24.0) * SECONDS_PER_HOUR,
        batch_size=env_int("CIRCLES_BATCH_SIZE", 1000),
        max_users=env_int("CIRCLES_MAX_USERS", 10_000),
        trust_query_limit=env_int("CIRCLES_TRUST_QUERY_LIMIT", 1000),
        enrich_delay_sec=env_float("CIRCLES_ENRICH_DELAY_MS", 20.0) / 1000.0,
        page_delay_sec=env_float("CIRCLES_PAGE_DELAY_MS", 100.0) / 1000.0,
        request_timeout_sec=env_float("CIRCLES_REQUEST_TIMEOUT_SEC", 30.0),
        max_retries=env_int("CIRCLES_MAX_RETRIES", 3),
        refresh_check_interval_sec=env_float("REFRESH_CHECK_INTERVAL_SEC", float(SECONDS_PER_HOUR)),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings_for_test() -> None:
    """Drop the cached Settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None

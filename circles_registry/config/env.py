"""
Environment variable loading for Circles Registry.

- CIRCLES_RPC_URL: Circles indexer JSON-RPC endpoint
- CIRCLES_NAMESPACE: indexer namespace holding Avatars / TrustRelations (default V_CrcV2)
- CIRCLES_CACHE_NAMESPACE: prefix for cache keys (default circles)
- CACHE_DB_URL / CACHE_DB_PATH: cache store database (SQLite file fallback)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is circles_registry/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_RPC_URL = "https://rpc.circlesubi.network/"
DEFAULT_QUERY_NAMESPACE = "V_CrcV2"
DEFAULT_CACHE_NAMESPACE = "circles"
DEFAULT_SQLITE_PATH = "circles_cache.db"


def load_registry_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str) -> str:
    """Return stripped env value, or default when unset/blank."""
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_int(name: str, default: int) -> int:
    """Return env value as int; default when unset or not an integer."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    """Return env value as float; default when unset or not a number."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_rpc_url() -> str:
    """Resolve the Circles RPC URL. Order: CIRCLES_RPC_URL > public default."""
    load_registry_env()
    return env_str("CIRCLES_RPC_URL", DEFAULT_RPC_URL)


def get_cache_db_url() -> str:
    """
    Return CACHE_DB_URL (or DATABASE_URL) when set; else SQLite from CACHE_DB_PATH
    or circles_cache.db in the working directory.
    """
    load_registry_env()
    url = (os.getenv("CACHE_DB_URL") or os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = env_str("CACHE_DB_PATH", DEFAULT_SQLITE_PATH)
    return f"sqlite:///{path}"


def mask_url(url: str) -> str:
    """Drop query string and credentials from a URL for logging."""
    base = url.split("?")[0]
    if "@" in base:
        scheme, _, rest = base.partition("://")
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return base

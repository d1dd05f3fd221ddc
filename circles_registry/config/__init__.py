"""
Configuration management for Circles Registry.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for RPC, cache store, and ingestion tuning.
"""

from circles_registry.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]

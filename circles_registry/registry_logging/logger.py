"""
Registry logging for refresh runs, trust counting and the read side.

Every line carries event_type, level, timestamp and logger. Ingestion reports
page_fetched / page_progress per page, empty_batch and page_fetch_failed on
misses, cursor_stored once a run completes and refresh_failed when it aborts.
Per-avatar trust lines (trust_count_capped, trust_count_failed) carry the
address via bind_address.

LOG_FORMAT=json (default) writes one JSON object per line to stdout; any other
value switches to structlog's console renderer. LOG_LEVEL filters below the
given level. Nothing from circles_registry is imported here so every module
can import it.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# json for the API and scheduler; "console" for a terminal
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """UTC ISO 8601 timestamp unless the caller passed one."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Move the positional event name to event_type and mirror it into message."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def configure_structlog() -> None:
    """Install the shared processor chain; runs once, at first import."""
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
    ]
    if LOG_FORMAT == "json":
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger with `logger` bound to the module name.

        logger = get_logger(__name__)
        logger.info("page_progress", processed=100, page_rows=1000)
    Output (JSON): {"event_type": "page_progress", "processed": 100, "page_rows": 1000,
    "timestamp": "...", "level": "info",
    "logger": "circles_registry.ingestion.engine"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_address(address: str) -> structlog.BoundLogger:
    """Logger for one avatar; every line it writes includes `address`."""
    return get_logger("circles_registry").bind(address=address)

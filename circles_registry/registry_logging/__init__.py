"""
Structured logging for Circles Registry.

JSON logs with timestamp, event_type, and call-site context (address, cursor, counts).
Use get_logger() in all modules for aggregation-friendly output.
"""

from circles_registry.registry_logging.logger import bind_address, get_logger

__all__ = ["bind_address", "get_logger"]

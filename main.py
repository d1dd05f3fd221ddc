"""
Main entrypoint: Circles Registry API server.

Scheduled refreshes run separately (python -m circles_registry.tools.refresh_scheduler)
so a long ingestion never shares a process with request handling.

Env: CIRCLES_RPC_URL, CACHE_DB_URL / CACHE_DB_PATH, API_HOST, API_PORT, LOG_LEVEL, etc.

Equivalent: uvicorn circles_registry.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os

import uvicorn

# Configure structured JSON logging before other imports that may log
from circles_registry.registry_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Load settings and serve the FastAPI app in the main thread."""
    from circles_registry.config.settings import get_settings
    from circles_registry.api_server.app import app

    settings = get_settings()
    logger.info(
        "main_server_starting",
        host=settings.api_host,
        port=settings.api_port,
        cache_namespace=settings.cache_namespace,
    )
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()

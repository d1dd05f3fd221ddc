"""
FastAPI server: HTTP surface over the Circles users registry.

Status lookups, cached user list and statistics read from the cache only.
POST /refresh runs an ingestion in the request thread; a process-local lock
keeps refreshes from overlapping (409 while one is running).
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from circles_registry import __version__
from circles_registry.registry_logging import get_logger
from circles_registry.service import CirclesUsersService, build_service
from circles_registry.utils.address_utils import is_valid_address

logger = get_logger(__name__)

_service: CirclesUsersService | None = None
_service_lock = threading.Lock()
_refresh_lock = threading.Lock()


def get_service() -> CirclesUsersService:
    """Dependency: one service per process, built from settings on first use."""
    global _service
    with _service_lock:
        if _service is None:
            _service = build_service()
        return _service


def reset_service_for_test() -> None:
    global _service
    with _service_lock:
        _service = None


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class UserStatusResponse(BaseModel):
    """GET /users/{address}/status response."""

    address: str = Field(..., description="Address as requested")
    found: bool = Field(..., description="Address is in the cached snapshot")
    verified: bool = Field(..., description="At least the threshold of incoming trusts")
    registered: bool = Field(..., description="Registered as a human avatar")
    trust_count: int = Field(..., ge=0, description="Incoming trusts (self-trust excluded)")
    needed_trusts: int = Field(..., ge=0, description="Trusts still needed to be verified")


class CachedUserResponse(BaseModel):
    address: str
    incoming_trust_count: int = Field(..., ge=0)
    outgoing_trust_count: int = Field(..., ge=0)
    is_verified: bool
    status: str
    timestamp: int = Field(..., description="Registration event time (Unix)")


class StatisticsResponse(BaseModel):
    total_users: int
    verified_users: int
    registered_users: int
    last_update: datetime | None = None
    cache_age: str
    cursor_position: str | None = Field(None, description="block:tx:log of the stored cursor")
    cursor_timestamp: datetime | None = None


class RefreshRequest(BaseModel):
    """POST /refresh body."""

    mode: Literal["full", "incremental", "auto"] = Field("auto", description="Refresh mode")
    batch_size: int | None = Field(None, gt=0, le=1000, description="Rows per page")
    max_users: int | None = Field(None, gt=0, description="User cap (new users in incremental mode)")


class RefreshResponse(BaseModel):
    success: bool
    mode: str
    total_count: int
    new_count: int
    updated_count: int
    error: str | None = None


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("api_started", version=__version__)
    yield
    logger.info("api_stopped")


app = FastAPI(
    title="Circles Registry API",
    description="Cached Circles user verification status and refresh control.",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness check: API is up."""
    return {"status": "ok"}


@app.get("/users/{address}/status", response_model=UserStatusResponse)
def user_status(address: str, service: CirclesUsersService = Depends(get_service)) -> UserStatusResponse:
    """Verification status of one address, from the cache only."""
    address = address.strip()
    if not is_valid_address(address):
        raise HTTPException(status_code=400, detail="Invalid address: expected 0x followed by 40 hex characters")
    check = service.check_status(address)
    return UserStatusResponse(address=address, **check.to_dict())


@app.get("/users", response_model=list[CachedUserResponse])
def list_users(
    status: Literal["verified", "registered"] | None = Query(None, description="Filter by status"),
    service: CirclesUsersService = Depends(get_service),
) -> list[CachedUserResponse]:
    """All cached users, optionally filtered by status."""
    users = service.get_cached_users()
    if status is not None:
        users = [u for u in users if u.status == status]
    return [CachedUserResponse(**u.to_dict()) for u in users]


@app.get("/statistics", response_model=StatisticsResponse)
def statistics(service: CirclesUsersService = Depends(get_service)) -> StatisticsResponse:
    stats = service.get_statistics()
    return StatisticsResponse(
        total_users=stats.total_users,
        verified_users=stats.verified_users,
        registered_users=stats.registered_users,
        last_update=stats.last_update,
        cache_age=stats.cache_age,
        cursor_position=stats.cursor_position,
        cursor_timestamp=stats.cursor_timestamp,
    )


@app.post("/refresh", response_model=RefreshResponse)
def refresh(body: RefreshRequest, service: CirclesUsersService = Depends(get_service)) -> JSONResponse:
    """
    Run a refresh now. 200 with success=true on success, 502 when the run
    failed (cache left as it was), 409 when a refresh is already running.
    """
    if not _refresh_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A refresh is already running")
    try:
        logger.info("api_refresh_called", mode=body.mode, batch_size=body.batch_size, max_users=body.max_users)
        result = service.refresh(body.mode, batch_size=body.batch_size, max_users=body.max_users)
    except Exception as e:
        logger.exception("api_refresh_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Refresh failed") from e
    finally:
        _refresh_lock.release()
    return JSONResponse(
        status_code=200 if result.success else 502,
        content=RefreshResponse(**result.to_dict()).model_dump(),
    )


@app.delete("/cursor")
def clear_cursor(service: CirclesUsersService = Depends(get_service)) -> dict[str, bool]:
    """Forget the resumption cursor so the next refresh runs in full."""
    if not service.clear_cursor():
        raise HTTPException(status_code=500, detail="Failed to clear cursor")
    return {"cleared": True}


@app.exception_handler(HTTPException)
def http_exception_handler(request, exc: HTTPException) -> JSONResponse:
    """Consistent JSON error response for HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from clinic_booking.config import settings
from clinic_booking.dependencies import BookingService

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness answer."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Readiness answer including the appointment store and cache."""

    store: str
    store_backend: str
    cache: str
    cached_appointments: int | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Detailed health check",
)
async def detailed_health_check(service: BookingService) -> DetailedHealthResponse:
    """
    Probe the appointment store and describe the cache.

    The status degrades when the store does not answer; the cache state is
    informational (``empty`` before the first read, then ``fresh``/``stale``).
    """
    store_healthy = await service.store.check_connection()
    rows = service.cache.data

    if rows is None:
        cache_state = "empty"
    else:
        cache_state = "stale" if service.cache.is_stale else "fresh"

    return DetailedHealthResponse(
        status="healthy" if store_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        store="healthy" if store_healthy else "unhealthy",
        store_backend=type(service.store).__name__,
        cache=cache_state,
        cached_appointments=len(rows) if rows is not None else None,
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}

"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from clinic_booking.api.v1.router import api_router
from clinic_booking.config import Settings, settings
from clinic_booking.middleware.error_handler import register_exception_handlers
from clinic_booking.middleware.logging import LoggingMiddleware, configure_logging
from clinic_booking.services.appointment_service import AppointmentService
from clinic_booking.stores.base import AppointmentStore
from clinic_booking.stores.http_store import HttpAppointmentStore
from clinic_booking.stores.memory_store import InMemoryAppointmentStore

configure_logging()
logger = structlog.get_logger()


def build_store(config: Settings = settings) -> AppointmentStore:
    """Select the remote store when configured, the in-process one otherwise."""
    if config.uses_remote_store:
        return HttpAppointmentStore.from_settings(config)
    return InMemoryAppointmentStore()


def build_service(config: Settings = settings) -> AppointmentService:
    """Wire the store, cache and checker into one booking service."""
    store = build_store(config)
    logger.info(
        "appointment_store_selected",
        store=type(store).__name__,
        base_url=config.store_base_url or None,
    )
    return AppointmentService(store, config=config)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build the booking service on startup and release the store on shutdown.

    A service already placed on ``app.state`` (e.g. by an embedding process)
    is used as is. There is exactly one appointments cache per process.
    """
    logger.info("application_startup", environment=settings.environment)

    if app.state.appointment_service is None:
        app.state.appointment_service = build_service()

    service: AppointmentService = app.state.appointment_service
    if await service.store.check_connection():
        logger.info("appointment_store_connected")
    else:
        # Reads and writes will fail with StorageException until it answers.
        logger.error("appointment_store_unreachable")

    yield

    logger.info("application_shutdown")
    await service.store.close()
    logger.info("appointment_store_closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Clinic appointment booking with conflict detection and optimistic updates",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
app.state.appointment_service = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.api_v1_prefix)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service name, version and where to find the API docs."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )

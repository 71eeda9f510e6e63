from collections.abc import AsyncGenerator
from datetime import date, time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from clinic_booking.config import Settings
from clinic_booking.dependencies import get_appointment_service
from clinic_booking.main import app
from clinic_booking.schemas.appointments import AppointmentCreate
from clinic_booking.services.appointment_service import AppointmentService
from clinic_booking.services.availability_service import AvailabilityChecker
from clinic_booking.services.cache_manager import AppointmentCache, OptimisticCacheManager
from clinic_booking.stores.memory_store import InMemoryAppointmentStore

BOOKING_DATE = date(2024, 6, 1)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        cache_stale_time=120.0,
        default_appointment_duration=30,
        temp_id_prefix="temp-",
        strict_status_transitions=False,
        store_base_url="",
    )


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    """Empty in-process appointment store."""
    return InMemoryAppointmentStore()


@pytest.fixture
def cache(store: InMemoryAppointmentStore) -> AppointmentCache:
    """Appointment cache over the test store."""
    return AppointmentCache(store, stale_time=120.0)


@pytest.fixture
def cache_manager(
    store: InMemoryAppointmentStore, cache: AppointmentCache
) -> OptimisticCacheManager:
    """Optimistic cache manager over the test store."""
    return OptimisticCacheManager(store, cache=cache)


@pytest.fixture
def checker(store: InMemoryAppointmentStore) -> AvailabilityChecker:
    """Availability checker over the test store."""
    return AvailabilityChecker(store)


@pytest.fixture
def service(
    store: InMemoryAppointmentStore,
    cache: AppointmentCache,
    test_settings: Settings,
) -> AppointmentService:
    """Booking service wired to the test store."""
    return AppointmentService(store, cache=cache, config=test_settings)


@pytest.fixture
def make_draft():
    """Factory for booking drafts with sensible defaults."""

    def _make(
        start: str = "09:00",
        duration: int = 30,
        doctor_id: str = "doctor-1",
        patient_id: str = "patient-1",
        day: date = BOOKING_DATE,
        **extra,
    ) -> AppointmentCreate:
        return AppointmentCreate(
            patient_id=patient_id,
            doctor_id=doctor_id,
            date=day,
            time=time.fromisoformat(start),
            duration=duration,
            reason="Regular checkup",
            **extra,
        )

    return _make


@pytest.fixture
def sample_appointment_data() -> dict:
    """Sample appointment payload for the HTTP API."""
    return {
        "patient_id": "patient-1",
        "doctor_id": "doctor-1",
        "date": "2024-06-01",
        "time": "10:00",
        "duration": 30,
        "reason": "Regular checkup",
        "notes": "First time patient",
    }


@pytest_asyncio.fixture
async def client(service: AppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client bound to the test booking service."""
    app.dependency_overrides[get_appointment_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

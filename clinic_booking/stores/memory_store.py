"""In-process appointment store used in development and tests."""

import asyncio
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from pydantic import ValidationError

from clinic_booking.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
    validation_message,
)
from clinic_booking.core.interval import TimeSlot
from clinic_booking.core.status_lifecycle import occupies_slot
from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentUpdate,
)
from clinic_booking.services.availability_service import find_overlaps
from clinic_booking.stores.base import AppointmentStore

logger = structlog.get_logger()


class InMemoryAppointmentStore(AppointmentStore):
    """
    Dictionary-backed system of record.

    Writes run under a lock so the overlap check and the write form one
    transaction; the losing side of a race gets ``ConflictException``.
    """

    def __init__(self, appointments: list[Appointment] | None = None):
        """Initialize store with optional seed records."""
        self._rows: dict[str, Appointment] = {a.id: a for a in appointments or []}
        self._lock = asyncio.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def _ensure_free(self, candidate: Appointment) -> None:
        if not occupies_slot(candidate.status):
            return
        same_day = [
            a
            for a in self._rows.values()
            if a.doctor_id == candidate.doctor_id and a.date == candidate.date
        ]
        slot = TimeSlot(candidate.time, candidate.duration)
        conflicts = find_overlaps(same_day, slot, exclude_id=candidate.id)
        if conflicts:
            logger.info(
                "store_write_rejected_overlap",
                doctor_id=candidate.doctor_id,
                date=str(candidate.date),
                slot=str(slot),
                conflicting_ids=[a.id for a in conflicts],
            )
            raise ConflictException("This time slot is not available. Please choose another one.")

    async def list_appointments(
        self,
        filters: AppointmentFilters | None = None,
    ) -> list[Appointment]:
        """List appointments matching the filters."""
        filters = filters or AppointmentFilters()
        rows = [a for a in self._rows.values() if filters.matches(a)]

        if filters.patient_id and not filters.doctor_id:
            return sorted(rows, key=lambda a: (a.date, a.time), reverse=True)
        return sorted(rows, key=lambda a: (a.date, a.time))

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Get appointment by ID."""
        row = self._rows.get(appointment_id)
        if row is None:
            raise NotFoundException("Appointment not found")
        return row

    async def create_appointment(
        self,
        data: AppointmentCreate,
        created_by: str | None = None,
    ) -> Appointment:
        """Insert a new appointment with a canonical id and timestamps."""
        async with self._lock:
            now = self._now()
            appointment = Appointment(
                **data.model_dump(),
                id=str(uuid4()),
                created_at=now,
                updated_at=now,
                created_by=created_by,
            )
            self._ensure_free(appointment)
            self._rows[appointment.id] = appointment

        logger.info("store_appointment_created", appointment_id=appointment.id)
        return appointment

    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
    ) -> Appointment:
        """Merge the set fields of the patch into the stored record."""
        async with self._lock:
            current = await self.get_appointment(appointment_id)
            changes = data.changes()
            if not changes:
                return current

            try:
                updated = Appointment.model_validate(
                    {**current.model_dump(), **changes, "updated_at": self._now()}
                )
            except ValidationError as e:
                raise ValidationException(validation_message(e)) from e
            self._ensure_free(updated)
            self._rows[appointment_id] = updated

        logger.info(
            "store_appointment_updated",
            appointment_id=appointment_id,
            fields=sorted(changes),
        )
        return updated

    async def delete_appointment(self, appointment_id: str) -> None:
        """Remove an appointment."""
        async with self._lock:
            if appointment_id not in self._rows:
                raise NotFoundException("Appointment not found")
            del self._rows[appointment_id]

        logger.info("store_appointment_deleted", appointment_id=appointment_id)

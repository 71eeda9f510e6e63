"""Availability checking for doctor time slots."""

from collections.abc import Iterable
from datetime import date, time

import structlog

from clinic_booking.core.exceptions import AppException, StorageException, ValidationException
from clinic_booking.core.interval import TimeSlot, parse_time
from clinic_booking.core.status_lifecycle import occupies_slot
from clinic_booking.schemas.appointments import Appointment, AppointmentFilters
from clinic_booking.stores.base import AppointmentStore

logger = structlog.get_logger()


def find_overlaps(
    appointments: Iterable[Appointment],
    slot: TimeSlot,
    exclude_id: str | None = None,
    first_only: bool = False,
) -> list[Appointment]:
    """
    Find appointments whose slot overlaps ``slot``.

    Callers pass appointments of a single doctor on a single date. Cancelled
    appointments and ``exclude_id`` are skipped.

    Args:
        appointments: Candidates to compare against
        slot: Requested slot
        exclude_id: Appointment being rescheduled, ignored when comparing
        first_only: Stop at the first overlap

    Returns:
        Overlapping appointments in input order
    """
    conflicts = []
    for appointment in appointments:
        if appointment.id == exclude_id or not occupies_slot(appointment.status):
            continue
        if slot.overlaps(TimeSlot(appointment.time, appointment.duration)):
            conflicts.append(appointment)
            if first_only:
                break
    return conflicts


def _parse_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationException("Appointment date is required")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationException(f"Invalid appointment date: {value!r}")


class AvailabilityChecker:
    """Decides whether a doctor's slot can be booked."""

    def __init__(self, store: AppointmentStore):
        """Initialize checker with the appointment store."""
        self.store = store

    async def _existing(self, doctor_id: str, day: date) -> list[Appointment]:
        filters = AppointmentFilters(doctor_id=doctor_id, date=day)
        try:
            return await self.store.list_appointments(filters)
        except AppException:
            raise
        except Exception as e:
            logger.error(
                "availability_read_failed",
                doctor_id=doctor_id,
                date=str(day),
                error=str(e),
            )
            raise StorageException("Could not load existing appointments") from e

    async def find_conflicts(
        self,
        doctor_id: str,
        day: date | str,
        start: time | str,
        duration: int,
        exclude_id: str | None = None,
        first_only: bool = False,
    ) -> list[Appointment]:
        """
        List existing appointments that overlap the requested slot.

        Args:
            doctor_id: Doctor whose calendar is checked
            day: Calendar date of the slot
            start: Clinic-local start time
            duration: Length in minutes
            exclude_id: Appointment to ignore (rescheduling against itself)
            first_only: Stop at the first overlap

        Returns:
            Overlapping non-cancelled appointments

        Raises:
            ValidationException: If the inputs are malformed
            StorageException: If existing appointments cannot be read
        """
        if not isinstance(doctor_id, str) or not doctor_id.strip():
            raise ValidationException("Doctor is required")
        day = _parse_date(day)
        slot = TimeSlot.from_values(start, duration)

        existing = await self._existing(doctor_id, day)
        # Stores may ignore unknown filters; never trust them blindly.
        same_day = [a for a in existing if a.doctor_id == doctor_id and a.date == day]
        return find_overlaps(same_day, slot, exclude_id=exclude_id, first_only=first_only)

    async def check_availability(
        self,
        doctor_id: str,
        day: date | str,
        start: time | str,
        duration: int,
        exclude_id: str | None = None,
    ) -> bool:
        """
        Check whether a slot is free for the doctor.

        Back-to-back slots do not conflict. A store failure propagates as
        ``StorageException``; it never reads as "available".

        Returns:
            True if no non-cancelled appointment overlaps the slot
        """
        conflicts = await self.find_conflicts(
            doctor_id, day, start, duration, exclude_id=exclude_id, first_only=True
        )
        available = not conflicts
        logger.debug(
            "availability_checked",
            doctor_id=doctor_id,
            date=str(day),
            start=str(parse_time(start)),
            duration=duration,
            exclude_id=exclude_id,
            available=available,
        )
        return available

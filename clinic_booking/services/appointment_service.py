"""Appointment service for business logic."""

from datetime import UTC, date, datetime, time
from typing import Any

import structlog
from pydantic import ValidationError

from clinic_booking.config import Settings, settings
from clinic_booking.core.exceptions import (
    ConflictException,
    ValidationException,
    validation_message,
)
from clinic_booking.core.mutation import MutationCallbacks
from clinic_booking.core.status_lifecycle import occupies_slot, validate_transition
from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    DailyStats,
    TotalStats,
)
from clinic_booking.services.availability_service import AvailabilityChecker
from clinic_booking.services.cache_manager import AppointmentCache, OptimisticCacheManager
from clinic_booking.stores.base import AppointmentStore

logger = structlog.get_logger()


def _conflict_message(conflicts: list[Appointment]) -> str:
    taken = ", ".join(
        f"{a.time.strftime('%H:%M')} ({a.duration} min)" for a in conflicts
    )
    return f"This time slot is not available. Please choose another one. Already booked: {taken}"


class AppointmentService:
    """
    Caller-facing booking API.

    Reads of the whole collection are served from the optimistic cache;
    every write is validated locally and then run through the cache manager.
    The conflict pre-check is part of the dispatched write, so a taken slot
    rolls back and reports like a rejection from the store.
    """

    def __init__(
        self,
        store: AppointmentStore,
        cache: AppointmentCache | None = None,
        checker: AvailabilityChecker | None = None,
        config: Settings = settings,
    ):
        """Initialize service with the store and its collaborators."""
        self.store = store
        self.config = config
        self.cache = cache or AppointmentCache(store, stale_time=config.cache_stale_time)
        self.checker = checker or AvailabilityChecker(store)
        self.mutations = OptimisticCacheManager(
            store,
            cache=self.cache,
            temp_id_prefix=config.temp_id_prefix,
        )

    def _validate_draft(self, data: AppointmentCreate | dict[str, Any]) -> AppointmentCreate:
        if isinstance(data, AppointmentCreate):
            return data
        payload = dict(data)
        if payload.get("duration") is None:
            payload["duration"] = self.config.default_appointment_duration
        try:
            return AppointmentCreate.model_validate(payload)
        except ValidationError as e:
            raise ValidationException(validation_message(e)) from e

    @staticmethod
    def _validate_patch(data: AppointmentUpdate | dict[str, Any]) -> AppointmentUpdate:
        if isinstance(data, AppointmentUpdate):
            return data
        try:
            return AppointmentUpdate.model_validate(data)
        except ValidationError as e:
            raise ValidationException(validation_message(e)) from e

    async def _ensure_available(
        self,
        doctor_id: str,
        day: date,
        start: time,
        duration: int,
        exclude_id: str | None = None,
    ) -> None:
        conflicts = await self.checker.find_conflicts(
            doctor_id, day, start, duration, exclude_id=exclude_id
        )
        if conflicts:
            logger.info(
                "appointment_slot_unavailable",
                doctor_id=doctor_id,
                date=str(day),
                time=str(start),
                duration=duration,
                conflicting_ids=[a.id for a in conflicts],
            )
            raise ConflictException(_conflict_message(conflicts))

    async def check_availability(
        self,
        doctor_id: str,
        day: date | str,
        start: time | str,
        duration: int,
        exclude_id: str | None = None,
    ) -> bool:
        """
        Check whether a doctor's slot is free.

        Raises:
            ValidationException: If the inputs are malformed
            StorageException: If existing appointments cannot be read
        """
        return await self.checker.check_availability(
            doctor_id, day, start, duration, exclude_id=exclude_id
        )

    async def find_conflicts(
        self,
        doctor_id: str,
        day: date | str,
        start: time | str,
        duration: int,
        exclude_id: str | None = None,
    ) -> list[Appointment]:
        """List the appointments that block a slot."""
        return await self.checker.find_conflicts(
            doctor_id, day, start, duration, exclude_id=exclude_id
        )

    async def create_appointment(
        self,
        data: AppointmentCreate | dict[str, Any],
        created_by: str | None = None,
        callbacks: MutationCallbacks | None = None,
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            data: Booking draft
            created_by: ID of the staff member or user creating it
            callbacks: Lifecycle hooks (start/error/success/settled)

        Returns:
            Created appointment with its canonical id

        Raises:
            ValidationException: If the draft is malformed
            ConflictException: If the slot is taken, before or at commit time
            StorageException: If the store cannot be reached
        """
        draft = self._validate_draft(data)

        async def precheck() -> None:
            if occupies_slot(draft.status):
                await self._ensure_available(
                    draft.doctor_id, draft.date, draft.time, draft.duration
                )

        appointment = await self.mutations.create(
            draft,
            created_by=created_by,
            callbacks=callbacks,
            precheck=precheck,
        )
        logger.info(
            "appointment_created",
            appointment_id=appointment.id,
            doctor_id=appointment.doctor_id,
            date=str(appointment.date),
            time=str(appointment.time),
        )
        return appointment

    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate | dict[str, Any],
        callbacks: MutationCallbacks | None = None,
    ) -> Appointment:
        """
        Update (reschedule or edit) an existing appointment.

        Moving the appointment, or bringing it back from ``cancelled``,
        re-checks availability while ignoring the appointment itself.

        Raises:
            ValidationException: If the patch or status change is invalid
            NotFoundException: If appointment not found
            ConflictException: If the new slot is taken
            StorageException: If the store cannot be reached
        """
        patch = self._validate_patch(data)
        current = await self.store.get_appointment(appointment_id)

        new_status = current.status
        if patch.status is not None:
            new_status = validate_transition(
                current.status,
                patch.status,
                strict=self.config.strict_status_transitions,
            )

        reoccupies = not occupies_slot(current.status) and occupies_slot(new_status)

        async def precheck() -> None:
            if occupies_slot(new_status) and (patch.touches_slot or reoccupies):
                await self._ensure_available(
                    patch.doctor_id or current.doctor_id,
                    patch.date or current.date,
                    patch.time or current.time,
                    patch.duration or current.duration,
                    exclude_id=appointment_id,
                )

        appointment = await self.mutations.update(
            appointment_id,
            patch,
            callbacks=callbacks,
            precheck=precheck,
        )
        logger.info(
            "appointment_updated",
            appointment_id=appointment_id,
            fields=sorted(patch.model_fields_set),
        )
        return appointment

    async def update_status(
        self,
        appointment_id: str,
        status: AppointmentStatus | str,
        notes: str | None = None,
        callbacks: MutationCallbacks | None = None,
    ) -> Appointment:
        """Move an appointment to another status."""
        values: dict[str, Any] = {"status": status}
        if notes is not None:
            values["notes"] = notes
        return await self.update_appointment(appointment_id, values, callbacks=callbacks)

    async def cancel_appointment(
        self,
        appointment_id: str,
        callbacks: MutationCallbacks | None = None,
    ) -> Appointment:
        """Cancel an appointment, freeing its slot."""
        return await self.update_status(
            appointment_id, AppointmentStatus.CANCELLED, callbacks=callbacks
        )

    async def delete_appointment(
        self,
        appointment_id: str,
        callbacks: MutationCallbacks | None = None,
    ) -> None:
        """
        Permanently delete an appointment.

        Deleting an appointment that no longer exists succeeds. Prefer
        ``cancel_appointment`` for normal flows.
        """
        await self.mutations.delete(appointment_id, callbacks=callbacks, missing_ok=True)
        logger.info("appointment_deleted", appointment_id=appointment_id)

    async def list_appointments(
        self,
        filters: AppointmentFilters | None = None,
    ) -> list[Appointment]:
        """
        List appointments.

        The unfiltered collection comes from the cache (re-read when stale);
        filtered listings go straight to the store.
        """
        if filters is None or filters.is_empty:
            return await self.cache.fetch()
        return await self.store.list_appointments(filters)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        return await self.store.get_appointment(appointment_id)

    async def get_stats(self, today: date | None = None) -> AppointmentStats:
        """Summarize today's and overall appointment counts."""
        today = today or datetime.now(UTC).date()
        rows = await self.cache.fetch()

        todays = [a for a in rows if a.date == today]
        this_month = [a for a in rows if (a.date.year, a.date.month) == (today.year, today.month)]

        return AppointmentStats(
            today=DailyStats(
                total=len(todays),
                confirmed=sum(a.status == AppointmentStatus.CONFIRMED for a in todays),
                pending=sum(a.status == AppointmentStatus.SCHEDULED for a in todays),
                completed=sum(a.status == AppointmentStatus.COMPLETED for a in todays),
            ),
            total=TotalStats(all=len(rows), this_month=len(this_month)),
        )

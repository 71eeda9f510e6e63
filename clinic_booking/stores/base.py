"""Contract for the remote appointment system of record."""

from abc import ABC, abstractmethod

from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentUpdate,
)


class AppointmentStore(ABC):
    """
    Asynchronous appointment store.

    Every operation may fail independently of client-side validation. The
    store is the only party that can guarantee non-overlap under concurrent
    writers: a create or update that would overlap a non-cancelled
    appointment of the same doctor on the same date must be rejected with
    ``ConflictException``.
    """

    @abstractmethod
    async def list_appointments(
        self,
        filters: AppointmentFilters | None = None,
    ) -> list[Appointment]:
        """
        List appointments.

        Args:
            filters: Optional doctor/patient/date/status criteria

        Returns:
            Matching appointments ordered by date and time; patient listings
            newest first

        Raises:
            StorageException: On transport or backend failure
        """

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            StorageException: On transport or backend failure
        """

    @abstractmethod
    async def create_appointment(
        self,
        data: AppointmentCreate,
        created_by: str | None = None,
    ) -> Appointment:
        """
        Persist a new appointment.

        Raises:
            ValidationException: If the store rejects the draft
            ConflictException: If the slot is taken at commit time
            StorageException: On transport or backend failure
        """

    @abstractmethod
    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
    ) -> Appointment:
        """
        Apply a partial update.

        Raises:
            NotFoundException: If appointment not found
            ConflictException: If the new slot is taken at commit time
            StorageException: On transport or backend failure
        """

    @abstractmethod
    async def delete_appointment(self, appointment_id: str) -> None:
        """
        Permanently delete an appointment.

        Raises:
            NotFoundException: If appointment not found
            StorageException: On transport or backend failure
        """

    async def check_connection(self) -> bool:
        """Check if the store is reachable."""
        return True

    async def close(self) -> None:
        """Release transport resources."""

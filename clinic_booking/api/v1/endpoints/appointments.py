"""Appointment endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from clinic_booking.dependencies import ActingUserId, BookingService
from clinic_booking.schemas.appointments import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStats,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    AvailabilityQuery,
    AvailabilityResponse,
)

router = APIRouter()


@router.post(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check slot availability",
)
async def check_availability(
    query: AvailabilityQuery,
    service: BookingService,
) -> AvailabilityResponse:
    """
    Check whether a doctor's slot can be booked.

    Args:
        query: Doctor, date, start time, duration and optional appointment to ignore
        service: Booking service

    Returns:
        Availability and the ids of conflicting appointments
    """
    conflicts = await service.find_conflicts(
        query.doctor_id,
        query.date,
        query.time,
        query.duration,
        exclude_id=query.exclude_id,
    )
    return AvailabilityResponse(
        available=not conflicts,
        conflicting_ids=[a.id for a in conflicts],
    )


@router.post(
    "/",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: BookingService,
    user_id: ActingUserId,
) -> Appointment:
    """
    Book a new appointment.

    Args:
        data: Appointment creation data
        service: Booking service
        user_id: Caller identity recorded as creator

    Returns:
        Created appointment
    """
    return await service.create_appointment(data, created_by=user_id)


@router.get(
    "/",
    response_model=list[Appointment],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    service: BookingService,
    doctor_id: str | None = Query(None),
    patient_id: str | None = Query(None),
    day: date | None = Query(None, alias="date"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
) -> list[Appointment]:
    """
    List appointments, optionally filtered.

    Args:
        service: Booking service
        doctor_id: Filter by doctor ID
        patient_id: Filter by patient ID
        day: Filter by date
        status_filter: Filter by status

    Returns:
        Matching appointments
    """
    filters = AppointmentFilters(
        doctor_id=doctor_id,
        patient_id=patient_id,
        date=day,
        status=status_filter,
    )
    return await service.list_appointments(filters)


@router.get(
    "/stats",
    response_model=AppointmentStats,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment statistics",
)
async def get_stats(service: BookingService) -> AppointmentStats:
    """Summarize today's and overall appointment counts."""
    return await service.get_stats()


@router.get(
    "/{appointment_id}",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    service: BookingService,
) -> Appointment:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    service: BookingService,
) -> Appointment:
    """
    Update or reschedule an existing appointment.

    Args:
        appointment_id: Appointment ID
        data: Update data
        service: Booking service

    Returns:
        Updated appointment

    Raises:
        NotFoundException: If appointment not found
        ConflictException: If the new slot is taken
    """
    return await service.update_appointment(appointment_id, data)


@router.patch(
    "/{appointment_id}/status",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: str,
    data: AppointmentStatusUpdate,
    service: BookingService,
) -> Appointment:
    """Update appointment status (e.g., confirm, cancel, complete)."""
    return await service.update_status(appointment_id, data.status, notes=data.notes)


@router.post(
    "/{appointment_id}/cancel",
    response_model=Appointment,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    service: BookingService,
) -> Appointment:
    """Cancel an appointment and free its slot."""
    return await service.cancel_appointment(appointment_id)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: str,
    service: BookingService,
) -> None:
    """Permanently delete an appointment; deleting a missing one succeeds."""
    await service.delete_appointment(appointment_id)

"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, Request

from clinic_booking.services.appointment_service import AppointmentService


def get_appointment_service(request: Request) -> AppointmentService:
    """
    Get the booking service built during application startup.

    The service owns the single appointments cache, so every request shares it.
    """
    return request.app.state.appointment_service


def get_acting_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str | None:
    """Read the identity of the caller forwarded by the authenticating gateway."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


# Type aliases for dependency injection
BookingService = Annotated[AppointmentService, Depends(get_appointment_service)]
ActingUserId = Annotated[str | None, Depends(get_acting_user_id)]

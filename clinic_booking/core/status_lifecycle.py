"""
Appointment status lifecycle.

``scheduled`` is the initial state. ``completed``, ``cancelled`` and
``no-show`` are terminal. Cancelled appointments no longer occupy their slot.

By default any member-to-member transition is accepted and leaving a terminal
state is only logged. Strict mode rejects anything outside the table.
"""

import structlog

from clinic_booking.core.exceptions import ValidationException
from clinic_booking.schemas.appointments import AppointmentStatus

logger = structlog.get_logger()

INITIAL_STATUS = AppointmentStatus.SCHEDULED

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)

_FORWARD = frozenset(
    {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }
)

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: _FORWARD,
    AppointmentStatus.CONFIRMED: _FORWARD,
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def coerce_status(value: AppointmentStatus | str) -> AppointmentStatus:
    """
    Convert a raw value to a member of the status enumeration.

    Raises:
        ValidationException: If the value is not a known status
    """
    try:
        return AppointmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AppointmentStatus)
        raise ValidationException(f"Invalid status {value!r}; expected one of: {allowed}")


def is_terminal(status: AppointmentStatus | str) -> bool:
    """Check whether no further transition is expected from this status."""
    return coerce_status(status) in TERMINAL_STATUSES


def occupies_slot(status: AppointmentStatus | str) -> bool:
    """Cancelled appointments free their slot; every other status holds it."""
    return coerce_status(status) != AppointmentStatus.CANCELLED


def allowed_transitions(status: AppointmentStatus | str) -> frozenset[AppointmentStatus]:
    """Statuses reachable in a single step from ``status``."""
    return TRANSITIONS[coerce_status(status)]


def can_transition(current: AppointmentStatus | str, new: AppointmentStatus | str) -> bool:
    """Check a transition against the table; staying put is always allowed."""
    current, new = coerce_status(current), coerce_status(new)
    return current == new or new in TRANSITIONS[current]


def validate_transition(
    current: AppointmentStatus | str,
    new: AppointmentStatus | str,
    strict: bool = False,
) -> AppointmentStatus:
    """
    Validate a status change.

    Args:
        current: Status the appointment has now
        new: Requested status
        strict: Reject transitions outside the table instead of logging them

    Returns:
        The requested status as an enumeration member

    Raises:
        ValidationException: If ``new`` is not a valid status, or strict mode
            rejects the transition
    """
    current, new = coerce_status(current), coerce_status(new)

    if can_transition(current, new):
        return new

    if strict:
        raise ValidationException(
            f"Cannot change appointment status from {current.value} to {new.value}"
        )

    logger.warning(
        "status_transition_outside_table",
        from_status=current.value,
        to_status=new.value,
        from_terminal=current in TERMINAL_STATUSES,
    )
    return new

"""Time slots on a single day and their overlap predicate."""

from dataclasses import dataclass
from datetime import time

from clinic_booking.core.exceptions import ValidationException

MINUTES_PER_DAY = 24 * 60


def minute_precision_error(value: time) -> str | None:
    """Why a time cannot start a slot, or None if it can."""
    if value.tzinfo is not None:
        return "Appointment time must be clinic-local, without a UTC offset"
    if value.second or value.microsecond:
        return "Appointment time must be a whole minute"
    return None


def parse_time(value: time | str) -> time:
    """
    Parse a clinic-local time of day.

    Args:
        value: A ``time`` or an ``HH:MM`` / ``HH:MM:SS`` string; slots start on
            whole minutes, so seconds and UTC offsets are rejected

    Returns:
        Parsed time

    Raises:
        ValidationException: If the value is not a valid time of day
    """
    if isinstance(value, str) and value.strip():
        try:
            value = time.fromisoformat(value.strip())
        except ValueError:
            raise ValidationException(f"Invalid appointment time: {value!r}")
    if not isinstance(value, time):
        raise ValidationException("Appointment time is required")

    error = minute_precision_error(value)
    if error:
        raise ValidationException(error)
    return value


@dataclass(frozen=True)
class TimeSlot:
    """Half-open interval ``[start, start + duration)`` in minutes since midnight."""

    start: time
    duration: int

    def __post_init__(self) -> None:
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise ValidationException("Duration must be a whole number of minutes")
        if self.duration <= 0:
            raise ValidationException("Duration must be greater than zero")
        error = minute_precision_error(self.start)
        if error:
            raise ValidationException(error)

    @classmethod
    def from_values(cls, start: time | str, duration: int) -> "TimeSlot":
        """Build a slot from a raw time value and a duration in minutes."""
        return cls(start=parse_time(start), duration=duration)

    @property
    def start_minute(self) -> int:
        """Minutes since midnight at which the slot begins."""
        return self.start.hour * 60 + self.start.minute

    @property
    def end_minute(self) -> int:
        """Exclusive end; may run past midnight within the same day key."""
        return self.start_minute + self.duration

    def overlaps(self, other: "TimeSlot") -> bool:
        """Touching endpoints do not overlap."""
        return self.start_minute < other.end_minute and other.start_minute < self.end_minute

    def __str__(self) -> str:
        end = self.end_minute % MINUTES_PER_DAY
        return f"{self.start.strftime('%H:%M')}-{end // 60:02d}:{end % 60:02d}"

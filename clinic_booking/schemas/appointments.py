"""Appointment schemas for request/response validation."""

from datetime import date as Date
from datetime import datetime
from datetime import time as Time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clinic_booking.core.interval import minute_precision_error


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


def _strip_required(v: str | None) -> str | None:
    if v is not None and not v.strip():
        raise ValueError("Field must not be blank")
    return v


def _whole_minute(v: Time | None) -> Time | None:
    error = minute_precision_error(v) if v is not None else None
    if error:
        raise ValueError(error)
    return v


class AppointmentBase(BaseModel):
    """Base appointment schema with common fields."""

    patient_id: str = Field(..., min_length=1, max_length=100)
    doctor_id: str = Field(..., min_length=1, max_length=100)
    date: Date
    time: Time
    duration: int = Field(default=30, gt=0, le=24 * 60)
    reason: str = Field(..., min_length=1, max_length=500)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("patient_id", "doctor_id", "reason")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers and reasons."""
        return _strip_required(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Time) -> Time:
        """Slots start on whole clinic-local minutes."""
        return _whole_minute(v)


class AppointmentCreate(AppointmentBase):
    """Schema for creating a new appointment (the booking draft)."""

    status: AppointmentStatus = AppointmentStatus.SCHEDULED


class AppointmentUpdate(BaseModel):
    """Schema for updating an existing appointment."""

    patient_id: str | None = Field(None, min_length=1, max_length=100)
    doctor_id: str | None = Field(None, min_length=1, max_length=100)
    date: Date | None = None
    time: Time | None = None
    duration: int | None = Field(None, gt=0, le=24 * 60)
    reason: str | None = Field(None, min_length=1, max_length=500)
    status: AppointmentStatus | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("patient_id", "doctor_id", "reason")
    @classmethod
    def validate_not_blank(cls, v: str | None) -> str | None:
        """Reject whitespace-only identifiers and reasons."""
        return _strip_required(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Time | None) -> Time | None:
        """Slots start on whole clinic-local minutes."""
        return _whole_minute(v)

    @model_validator(mode="after")
    def reject_cleared_required_fields(self) -> "AppointmentUpdate":
        """Only ``notes`` may be explicitly set to null."""
        cleared = sorted(
            name
            for name in self.model_fields_set - {"notes"}
            if getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"Fields cannot be cleared: {', '.join(cleared)}")
        return self

    def changes(self) -> dict:
        """Fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True)

    @property
    def touches_slot(self) -> bool:
        """Whether the patch moves the appointment in the doctor's calendar."""
        return bool(self.model_fields_set & {"doctor_id", "date", "time", "duration"})


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status."""

    status: AppointmentStatus
    notes: str | None = Field(None, max_length=1000)


class Appointment(AppointmentBase):
    """Canonical (or provisional) appointment record."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., min_length=1)
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime
    created_by: str | None = None


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    doctor_id: str | None = None
    patient_id: str | None = None
    date: Date | None = None
    status: AppointmentStatus | None = None

    @property
    def is_empty(self) -> bool:
        """No criterion set: the whole appointments collection."""
        return not self.model_dump(exclude_none=True)

    def matches(self, appointment: Appointment) -> bool:
        """Check whether an appointment satisfies every set criterion."""
        criteria = self.model_dump(exclude_none=True)
        return all(getattr(appointment, field) == value for field, value in criteria.items())


class AvailabilityQuery(BaseModel):
    """Schema for an availability check request."""

    doctor_id: str = Field(..., min_length=1)
    date: Date
    time: Time
    duration: int = Field(default=30, gt=0, le=24 * 60)
    exclude_id: str | None = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Time) -> Time:
        """Slots start on whole clinic-local minutes."""
        return _whole_minute(v)


class AvailabilityResponse(BaseModel):
    """Schema for an availability check answer."""

    available: bool
    conflicting_ids: list[str] = Field(default_factory=list)


class DailyStats(BaseModel):
    """Counts for a single day."""

    total: int = 0
    confirmed: int = 0
    pending: int = 0
    completed: int = 0


class TotalStats(BaseModel):
    """Counts across the whole collection."""

    all: int = 0
    this_month: int = 0


class AppointmentStats(BaseModel):
    """Dashboard summary of appointments."""

    today: DailyStats
    total: TotalStats

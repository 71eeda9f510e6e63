"""Tests for the booking service."""

import asyncio
import random
from datetime import date, time
from unittest.mock import AsyncMock, patch

import pytest

from clinic_booking.config import Settings
from clinic_booking.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinic_booking.core.interval import TimeSlot
from clinic_booking.core.mutation import MutationCallbacks
from clinic_booking.core.status_lifecycle import occupies_slot
from clinic_booking.schemas.appointments import (
    AppointmentFilters,
    AppointmentStatus,
    AppointmentUpdate,
)
from clinic_booking.services.appointment_service import AppointmentService
from clinic_booking.services.cache_manager import is_temporary_id

BOOKING_DATE = date(2024, 6, 1)


@pytest.mark.asyncio
async def test_booking_then_overlapping_booking_rejected(service, store, make_draft):
    """Test a taken slot is reported unavailable and cannot be booked."""
    first = await service.create_appointment(make_draft("10:00", 30))
    assert not is_temporary_id(first.id)
    assert first.status == AppointmentStatus.SCHEDULED

    assert not await service.check_availability("doctor-1", BOOKING_DATE, "10:15", 30)

    with pytest.raises(ConflictException) as exc_info:
        await service.create_appointment(make_draft("10:15", 30, patient_id="patient-2"))

    assert "10:00 (30 min)" in exc_info.value.message
    assert exc_info.value.status_code == 409
    assert [a.id for a in await service.list_appointments()] == [first.id]
    assert len(await store.list_appointments()) == 1


@pytest.mark.asyncio
async def test_back_to_back_bookings_allowed(service, make_draft):
    """Test consecutive appointments share an endpoint without conflict."""
    await service.create_appointment(make_draft("09:00", 30))
    await service.create_appointment(make_draft("09:30", 30, patient_id="patient-2"))
    await service.create_appointment(make_draft("09:00", 30, doctor_id="doctor-2"))

    assert len(await service.list_appointments()) == 3


@pytest.mark.asyncio
async def test_conflict_fires_error_callbacks(service, make_draft):
    """Test a pre-check rejection goes through the mutation's error path."""
    await service.create_appointment(make_draft("10:00", 30))
    before = await service.list_appointments()
    on_error = AsyncMock()
    on_settled = AsyncMock()
    on_success = AsyncMock()

    with pytest.raises(ConflictException):
        await service.create_appointment(
            make_draft("10:10", 30),
            callbacks=MutationCallbacks(
                on_error=on_error, on_success=on_success, on_settled=on_settled
            ),
        )

    on_error.assert_awaited_once()
    assert isinstance(on_error.await_args.args[0], ConflictException)
    on_settled.assert_awaited_once()
    on_success.assert_not_called()
    assert service.cache.data == before


@pytest.mark.asyncio
async def test_created_by_is_recorded(service, make_draft):
    """Test the acting user is stored with the booking."""
    appointment = await service.create_appointment(make_draft(), created_by="staff-3")

    assert appointment.created_by == "staff-3"
    assert (await service.get_appointment(appointment.id)).created_by == "staff-3"


@pytest.mark.asyncio
async def test_default_duration_applied(store):
    """Test drafts without a duration get the configured default."""
    service = AppointmentService(store, config=Settings(default_appointment_duration=45))

    appointment = await service.create_appointment(
        {
            "patient_id": "patient-1",
            "doctor_id": "doctor-1",
            "date": "2024-06-01",
            "time": "09:00",
            "reason": "Follow-up",
        }
    )

    assert appointment.duration == 45
    assert not await service.check_availability("doctor-1", BOOKING_DATE, "09:40", 15)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"duration": 0},
        {"duration": -30},
        {"time": "9am"},
        {"date": "not-a-date"},
        {"doctor_id": "   "},
        {"reason": ""},
        {"status": "archived"},
    ],
)
async def test_invalid_draft_rejected_without_side_effects(service, store, overrides):
    """Test malformed drafts never reach the store or the cache."""
    payload = {
        "patient_id": "patient-1",
        "doctor_id": "doctor-1",
        "date": "2024-06-01",
        "time": "09:00",
        "duration": 30,
        "reason": "Checkup",
        **overrides,
    }

    with patch.object(store, "create_appointment", wraps=store.create_appointment) as create:
        with pytest.raises(ValidationException):
            await service.create_appointment(payload)

    create.assert_not_called()
    assert service.cache.data is None


@pytest.mark.asyncio
async def test_reschedule_against_own_slot(service, make_draft):
    """Test an appointment may be moved within its own slot."""
    appointment = await service.create_appointment(make_draft("09:00", 30))

    same = await service.update_appointment(appointment.id, {"time": "09:00", "notes": "Moved"})
    shifted = await service.update_appointment(appointment.id, {"time": "09:15", "duration": 45})

    assert same.notes == "Moved"
    assert shifted.time == time(9, 15)
    assert shifted.duration == 45
    assert service.cache.find(appointment.id) == shifted


@pytest.mark.asyncio
async def test_reschedule_into_taken_slot_rejected(service, store, make_draft):
    """Test moving onto another booking fails and leaves both unchanged."""
    await service.create_appointment(make_draft("09:00", 30))
    second = await service.create_appointment(make_draft("10:00", 30, patient_id="patient-2"))
    before = await service.list_appointments()

    with pytest.raises(ConflictException):
        await service.update_appointment(second.id, AppointmentUpdate(time=time(9, 15)))

    assert (await store.get_appointment(second.id)).time == time(10, 0)
    assert service.cache.data == before


@pytest.mark.asyncio
async def test_edit_without_moving_skips_availability_check(service, make_draft):
    """Test note-only edits do not re-check the slot."""
    appointment = await service.create_appointment(make_draft("09:00", 30))

    with patch.object(service.checker, "find_conflicts", AsyncMock()) as find_conflicts:
        updated = await service.update_appointment(appointment.id, {"notes": "Fasting"})

    find_conflicts.assert_not_called()
    assert updated.notes == "Fasting"


@pytest.mark.asyncio
async def test_cancellation_frees_slot(service, make_draft):
    """Test a cancelled booking's slot can be booked again."""
    first = await service.create_appointment(make_draft("09:00", 30))

    cancelled = await service.cancel_appointment(first.id)
    assert cancelled.status == AppointmentStatus.CANCELLED

    replacement = await service.create_appointment(make_draft("09:00", 30, patient_id="patient-2"))
    assert replacement.id != first.id


@pytest.mark.asyncio
async def test_reactivating_into_taken_slot_rejected(service, make_draft):
    """Test un-cancelling re-checks the slot the appointment would occupy again."""
    first = await service.create_appointment(make_draft("09:00", 30))
    await service.cancel_appointment(first.id)
    await service.create_appointment(make_draft("09:15", 30, patient_id="patient-2"))

    with pytest.raises(ConflictException):
        await service.update_status(first.id, AppointmentStatus.SCHEDULED)

    assert (await service.get_appointment(first.id)).status == AppointmentStatus.CANCELLED


@pytest.mark.asyncio
async def test_status_update_with_notes(service, make_draft):
    """Test status changes may carry notes."""
    appointment = await service.create_appointment(make_draft())

    confirmed = await service.update_status(appointment.id, "confirmed", notes="Called patient")

    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert confirmed.notes == "Called patient"


@pytest.mark.asyncio
async def test_strict_transitions_reject_terminal_changes(store, make_draft):
    """Test strict mode refuses leaving a terminal status."""
    service = AppointmentService(store, config=Settings(strict_status_transitions=True))
    appointment = await service.create_appointment(make_draft())
    await service.update_status(appointment.id, AppointmentStatus.COMPLETED)

    with pytest.raises(ValidationException):
        await service.update_status(appointment.id, AppointmentStatus.SCHEDULED)

    assert (await store.get_appointment(appointment.id)).status == AppointmentStatus.COMPLETED


@pytest.mark.asyncio
async def test_permissive_transitions_by_default(service, make_draft):
    """Test default mode accepts any known status."""
    appointment = await service.create_appointment(make_draft())
    await service.update_status(appointment.id, AppointmentStatus.COMPLETED)

    reopened = await service.update_status(appointment.id, AppointmentStatus.SCHEDULED)

    assert reopened.status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_update_missing_appointment(service):
    """Test updating an unknown id raises NotFoundException."""
    with pytest.raises(NotFoundException):
        await service.update_appointment("missing", {"notes": "x"})


@pytest.mark.asyncio
async def test_delete_is_idempotent(service, store, make_draft):
    """Test deleting twice succeeds and the record is gone."""
    appointment = await service.create_appointment(make_draft())

    await service.delete_appointment(appointment.id)
    await service.delete_appointment(appointment.id)

    assert await service.list_appointments() == []
    with pytest.raises(NotFoundException):
        await store.get_appointment(appointment.id)


@pytest.mark.asyncio
async def test_store_rejects_race_that_passes_precheck(service, store, make_draft):
    """Test two clients that both pass the pre-check cannot double-book."""
    with patch.object(service.checker, "find_conflicts", AsyncMock(return_value=[])):
        results = await asyncio.gather(
            service.create_appointment(make_draft("09:00", 30, patient_id="patient-1")),
            service.create_appointment(make_draft("09:10", 30, patient_id="patient-2")),
            return_exceptions=True,
        )

    conflicts = [r for r in results if isinstance(r, ConflictException)]
    assert len(conflicts) == 1
    assert len(await store.list_appointments()) == 1
    assert len(service.cache.data) == 1


@pytest.mark.asyncio
async def test_random_bookings_never_overlap(service, store, make_draft):
    """Test accepted bookings for a doctor and day never overlap."""
    rng = random.Random(1337)
    booked = []

    for _ in range(80):
        start = time(rng.randint(8, 16), rng.choice([0, 5, 10, 15, 20, 30, 40, 45, 50]))
        draft = make_draft(
            start.strftime("%H:%M"),
            rng.choice([15, 20, 30, 45, 60]),
            doctor_id=rng.choice(["doctor-1", "doctor-2"]),
            day=rng.choice([BOOKING_DATE, date(2024, 6, 2)]),
        )
        try:
            booked.append(await service.create_appointment(draft))
        except ConflictException:
            continue
        if booked and rng.random() < 0.2:
            await service.cancel_appointment(rng.choice(booked).id)

    assert booked
    rows = [a for a in await store.list_appointments() if occupies_slot(a.status)]
    for i, a in enumerate(rows):
        for b in rows[i + 1 :]:
            if (a.doctor_id, a.date) != (b.doctor_id, b.date):
                continue
            assert not TimeSlot(a.time, a.duration).overlaps(TimeSlot(b.time, b.duration))


@pytest.mark.asyncio
async def test_unfiltered_listing_served_from_cache(service, store, make_draft):
    """Test repeated collection reads hit the store once while fresh."""
    await service.create_appointment(make_draft("09:00"))

    with patch.object(store, "list_appointments", wraps=store.list_appointments) as reads:
        await service.list_appointments()
        await service.list_appointments(AppointmentFilters())
        assert reads.await_count == 0

        rows = await service.list_appointments(AppointmentFilters(doctor_id="doctor-2"))
        assert rows == []
        assert reads.await_count == 1


@pytest.mark.asyncio
async def test_patient_listing_is_newest_first(service, make_draft):
    """Test a patient's history is ordered by date descending."""
    await service.create_appointment(make_draft("09:00", day=date(2024, 6, 1)))
    await service.create_appointment(make_draft("09:00", day=date(2024, 6, 3)))
    await service.create_appointment(make_draft("09:00", day=date(2024, 6, 2), patient_id="p-9"))

    history = await service.list_appointments(AppointmentFilters(patient_id="patient-1"))

    assert [a.date for a in history] == [date(2024, 6, 3), date(2024, 6, 1)]


@pytest.mark.asyncio
async def test_stats(service, make_draft):
    """Test dashboard counts for today and this month."""
    a = await service.create_appointment(make_draft("09:00"))
    b = await service.create_appointment(make_draft("10:00"))
    await service.create_appointment(make_draft("11:00"))
    await service.create_appointment(make_draft("09:00", day=date(2024, 6, 20)))
    await service.create_appointment(make_draft("09:00", day=date(2024, 7, 1)))
    await service.update_status(a.id, AppointmentStatus.CONFIRMED)
    await service.update_status(b.id, AppointmentStatus.COMPLETED)

    stats = await service.get_stats(today=BOOKING_DATE)

    assert stats.today.total == 3
    assert stats.today.confirmed == 1
    assert stats.today.completed == 1
    assert stats.today.pending == 1
    assert stats.total.all == 5
    assert stats.total.this_month == 4


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "patch_data",
    [{"reason": None}, {"time": None}, {"date": None}, {"duration": None}, {"status": None}],
)
async def test_clearing_required_field_rejected(service, store, make_draft, patch_data):
    """Test a patch cannot null out a required field."""
    appointment = await service.create_appointment(make_draft("09:00"))
    before = service.cache.data

    with patch.object(store, "update_appointment", wraps=store.update_appointment) as update:
        with pytest.raises(ValidationException) as exc_info:
            await service.update_appointment(appointment.id, patch_data)

    assert "cannot be cleared" in exc_info.value.message
    update.assert_not_called()
    assert service.cache.data == before
    assert await store.get_appointment(appointment.id) == appointment


@pytest.mark.asyncio
async def test_store_rejects_invalid_merged_record(store, make_draft):
    """Test the store reports an invalid merge as ValidationException."""
    appointment = await store.create_appointment(make_draft("09:00"))
    patch_data = AppointmentUpdate.model_construct(_fields_set={"reason"}, reason=None)

    with pytest.raises(ValidationException) as exc_info:
        await store.update_appointment(appointment.id, patch_data)

    assert "reason" in exc_info.value.message
    assert await store.get_appointment(appointment.id) == appointment


@pytest.mark.asyncio
async def test_notes_may_be_cleared(service, make_draft):
    """Test notes are the one field a patch may blank or null."""
    appointment = await service.create_appointment(make_draft(notes="Allergic to latex"))

    confirmed = await service.update_status(appointment.id, "confirmed", notes="")
    assert confirmed.notes == ""

    cleared = await service.update_appointment(appointment.id, {"notes": None})
    assert cleared.notes is None
    assert cleared.status == AppointmentStatus.CONFIRMED

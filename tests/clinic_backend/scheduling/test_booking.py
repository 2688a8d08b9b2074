import json
import string
import threading
from datetime import date, time
from decimal import Decimal

import httpx
import pytest
import respx

from clinic_backend.core.errors import NotFound, SlotConflict, ValidationFailure
from clinic_backend.models.appointment import Appointment, AppointmentStatus
from clinic_backend.models.availability import Availability
from clinic_backend.notifications.webhooks import WebhookDispatcher, WebhookEvent
from clinic_backend.scheduling.booking import (
    SLOT_JUST_TAKEN_MESSAGE,
    SLOT_UNAVAILABLE_MESSAGE,
    BookingEngine,
    generate_unique_token,
)
from clinic_backend.scheduling.slots import SlotCalculator
from clinic_backend.stores.appointment_store import AppointmentStore
from clinic_backend.stores.availability_store import AvailabilityStore
from clinic_backend.stores.catalog_store import CatalogStore

MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


def _engine_for(session, webhooks=None) -> BookingEngine:
    appointments = AppointmentStore(session)
    return BookingEngine(
        appointments,
        CatalogStore(session),
        SlotCalculator(AvailabilityStore(session), appointments),
        webhooks=webhooks,
    )


def test_generate_unique_token_is_alphanumeric() -> None:
    token = generate_unique_token()

    assert len(token) == 12
    assert set(token) <= set(string.ascii_letters + string.digits)
    assert generate_unique_token() != token


def test_book_creates_pending_appointment_at_base_price(booking_engine, catalog, patient, webhooks) -> None:
    appointment = booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.price == Decimal('50.00')
    assert appointment.appointment_date == MONDAY
    assert appointment.appointment_time == time(10, 0)
    assert appointment.patient_email == 'juan@example.com'
    assert appointment.notes == 'Left knee pain'
    assert len(appointment.unique_token) == 12
    assert webhooks.events == [(WebhookEvent.CREATED, appointment.id)]


def test_book_assigns_distinct_tokens(booking_engine, catalog, patient) -> None:
    first = booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)
    second = booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '11:00', patient)

    assert first.unique_token != second.unique_token


def test_second_booking_for_same_slot_conflicts(booking_engine, catalog, patient) -> None:
    booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)

    with pytest.raises(SlotConflict):
        booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)


def test_cancelled_slot_can_be_booked_again(booking_engine, lifecycle, slot_calculator, catalog, patient) -> None:
    first = booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)
    assert '10:00' not in slot_calculator.compute_available_slots(catalog.ana.id, MONDAY)

    lifecycle.cancel_by_token(first.unique_token)
    assert '10:00' in slot_calculator.compute_available_slots(catalog.ana.id, MONDAY)

    second = booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)
    assert second.status == AppointmentStatus.PENDING.value


def test_book_rejects_unknown_specialty(booking_engine, catalog, patient) -> None:
    with pytest.raises(NotFound) as exception_info:
        booking_engine.book(9999, catalog.ana.id, '2026-01-05', '10:00', patient)

    assert exception_info.value.message == 'Specialty not found.'


def test_book_rejects_specialist_from_another_specialty(booking_engine, catalog, patient) -> None:
    with pytest.raises(NotFound):
        booking_engine.book(catalog.massage.id, catalog.ana.id, '2026-01-05', '10:00', patient)


@pytest.mark.parametrize('slot_date', ['2026-01-05', '2026-01-06'])
@pytest.mark.parametrize('slot_time', ['07:00', '22:00', '10:30'])
def test_book_rejects_off_grid_times_regardless_of_availability(
    booking_engine, catalog, patient, slot_date: str, slot_time: str,
) -> None:
    with pytest.raises(ValidationFailure):
        booking_engine.book(catalog.physio.id, catalog.ana.id, slot_date, slot_time, patient)


def test_book_rejects_day_without_availability(booking_engine, catalog, patient) -> None:
    with pytest.raises(SlotConflict) as exception_info:
        booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-06', '10:00', patient)

    assert exception_info.value.message == SLOT_UNAVAILABLE_MESSAGE


def test_book_resolves_date_string_to_the_same_calendar_day(booking_engine, db, catalog, patient) -> None:
    db.add(Availability(specialist_id=catalog.ana.id, day_of_week=3, start_time=time(9, 0), end_time=time(17, 0)))
    db.commit()

    appointment = booking_engine.book(catalog.physio.id, catalog.ana.id, '2025-12-31', '09:00', patient)

    assert appointment.appointment_date == date(2025, 12, 31)


def test_pre_commit_recheck_reports_just_booked(booking_engine, catalog, patient, add_appointment, monkeypatch) -> None:
    add_appointment(time(10, 0))
    # The slot read happened before the competing booking landed.
    monkeypatch.setattr(
        booking_engine.slots,
        'compute_available_slots',
        lambda specialist_id, slot_date: [f'{hour:02d}:00' for hour in range(8, 22)],
    )

    with pytest.raises(SlotConflict) as exception_info:
        booking_engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)

    assert exception_info.value.message == SLOT_JUST_TAKEN_MESSAGE


def test_unique_index_violation_becomes_slot_conflict(file_sessions, patient) -> None:
    factory, ids = file_sessions
    first_session = factory()
    second_session = factory()
    try:
        first_engine = _engine_for(first_session)
        second_engine = _engine_for(second_session)

        original_recheck = first_engine.appointments.find_active_at

        def competing_booking_lands_after_recheck(*args, **kwargs):
            found = original_recheck(*args, **kwargs)
            second_engine.book(ids.physio_id, ids.ana_id, '2026-01-05', '10:00', patient)
            return found

        first_engine.appointments.find_active_at = competing_booking_lands_after_recheck

        with pytest.raises(SlotConflict) as exception_info:
            first_engine.book(ids.physio_id, ids.ana_id, '2026-01-05', '10:00', patient)

        assert exception_info.value.message == SLOT_UNAVAILABLE_MESSAGE
        active = first_session.query(Appointment).filter(
            Appointment.appointment_date == MONDAY,
            Appointment.appointment_time == time(10, 0),
        ).all()
        assert len(active) == 1
    finally:
        first_session.close()
        second_session.close()


def test_webhook_failure_does_not_fail_booking(db, catalog, patient) -> None:
    dispatcher = WebhookDispatcher(url='https://hooks.example.test/clinic')
    engine = _engine_for(db, webhooks=dispatcher)

    with respx.mock:
        route = respx.post('https://hooks.example.test/clinic').mock(return_value=httpx.Response(500))
        appointment = engine.book(catalog.physio.id, catalog.ana.id, '2026-01-05', '10:00', patient)

    assert route.called
    payload = json.loads(route.calls.last.request.content)
    assert payload['event'] == 'appointment.created'
    assert appointment.status == AppointmentStatus.PENDING.value


def test_concurrent_bookings_for_one_slot_admit_a_single_winner(file_sessions, patient) -> None:
    factory, ids = file_sessions
    contenders = 8
    barrier = threading.Barrier(contenders)
    outcomes = []
    lock = threading.Lock()

    def attempt() -> None:
        session = factory()
        try:
            engine = _engine_for(session)
            barrier.wait()
            try:
                engine.book(ids.physio_id, ids.ana_id, '2026-01-05', '10:00', patient)
                outcome = 'booked'
            except SlotConflict:
                outcome = 'conflict'
            with lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(contenders)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ['booked'] + ['conflict'] * (contenders - 1)

    session = factory()
    try:
        booked = session.query(Appointment).filter(
            Appointment.appointment_date == MONDAY,
            Appointment.appointment_time == time(10, 0),
        ).count()
    finally:
        session.close()
    assert booked == 1

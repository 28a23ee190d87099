from datetime import date, timedelta

import pytest
from sqlalchemy.dialects import postgresql

from conftest import BOOKING_DATE, BOOKING_WEEKDAY
from hospital_api.core.errors import (
    DuplicateBookingError,
    InvalidSlotError,
    NotFoundError,
    SlotFullError,
    ValidationError,
)
from hospital_api.models.appointment import Appointment
from hospital_api.services import slots
from hospital_api.services.slots import (
    active_rules_query,
    book_appointment,
    derive_slots,
    is_slot_start,
    iter_slots,
    iterate_slot_starts,
    weekday_index,
)


def test_weekday_index_starts_on_sunday() -> None:
    assert weekday_index(date(2031, 3, 2)) == 0
    assert weekday_index(BOOKING_DATE) == 2
    assert weekday_index(date(2031, 3, 8)) == 6


def test_iterate_slot_starts_includes_slot_ending_exactly_at_end_time() -> None:
    assert list(iterate_slot_starts('09:00', '10:00', 30)) == [540, 570]


def test_iterate_slot_starts_drops_partial_trailing_slot() -> None:
    assert list(iterate_slot_starts('09:00', '09:40', 30)) == [540]


def test_iterate_slot_starts_empty_when_window_shorter_than_slot() -> None:
    assert list(iterate_slot_starts('09:00', '09:10', 15)) == []


def test_derive_slots_renders_starts_and_ends(db, seed, add_rule) -> None:
    add_rule(start_time='09:00', end_time='10:00', slot_duration=30)

    slots = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)

    assert [(slot.start_time, slot.end_time) for slot in slots] == [('09:00', '09:30'), ('09:30', '10:00')]
    assert all(slot.is_available and slot.booked_count == 0 for slot in slots)


def test_derive_slots_short_window_yields_single_slot(db, seed, add_rule) -> None:
    add_rule(start_time='09:00', end_time='09:40', slot_duration=30)

    slots = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)

    assert [slot.start_time for slot in slots] == ['09:00']


def test_derive_slots_full_slot_is_unavailable(db, seed, add_rule, add_appointment) -> None:
    add_rule(max_patients=2)
    add_appointment(patient_id=seed.patient.id, status='pending')
    add_appointment(patient_id=seed.other_patient.id, status='confirmed')

    first, second = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)

    assert (first.start_time, first.booked_count, first.max_patients, first.is_available) == ('09:00', 2, 2, False)
    assert second.is_available is True


def test_derive_slots_ignores_cancelled_and_completed(db, seed, add_rule, add_appointment) -> None:
    add_rule(max_patients=2)
    add_appointment(status='cancelled')
    add_appointment(status='pending')
    add_appointment(patient_id=seed.other_patient.id, status='completed')

    first = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)[0]

    assert first.booked_count == 1
    assert first.is_available is True


def test_derive_slots_only_counts_matching_doctor_hospital_and_date(db, seed, add_rule, add_appointment) -> None:
    add_rule(max_patients=1)
    add_appointment(appointment_date=BOOKING_DATE + timedelta(days=7))
    add_appointment(hospital_id=seed.other_hospital.id)
    add_appointment(doctor_id=seed.other_doctor.id)

    first = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)[0]

    assert first.booked_count == 0
    assert first.is_available is True


def test_derive_slots_empty_for_day_without_active_rules(db, seed, add_rule) -> None:
    add_rule(is_active=False)
    add_rule(day_of_week=(BOOKING_WEEKDAY + 1) % 7)

    assert derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE) == []


def test_derive_slots_orders_across_rules_and_keeps_duplicates(db, seed, add_rule) -> None:
    late = add_rule(start_time='11:00', end_time='12:00', slot_duration=60, max_patients=3)
    early = add_rule(start_time='09:00', end_time='11:30', slot_duration=60, max_patients=1)

    slots = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)

    assert [(slot.start_time, slot.availability_id, slot.max_patients) for slot in slots] == [
        ('09:00', early.id, 1),
        ('10:00', early.id, 1),
        ('11:00', late.id, 3),
    ]

    overlapping = add_rule(start_time='10:00', end_time='11:00', slot_duration=60, max_patients=5)
    slots = derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)

    assert [(slot.start_time, slot.availability_id) for slot in slots] == [
        ('09:00', early.id),
        ('10:00', early.id),
        ('10:00', overlapping.id),
        ('11:00', late.id),
    ]


def test_derive_slots_is_repeatable(db, seed, add_rule, add_appointment) -> None:
    add_rule(start_time='08:00', end_time='12:00', slot_duration=15)
    add_appointment(appointment_time='08:45')

    assert derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE) == derive_slots(
        db, seed.doctor.id, seed.hospital.id, BOOKING_DATE
    )


def test_iter_slots_raises_not_found_before_iteration(db, seed) -> None:
    with pytest.raises(NotFoundError):
        iter_slots(db, 999, seed.hospital.id, BOOKING_DATE)

    with pytest.raises(NotFoundError):
        iter_slots(db, seed.doctor.id, 999, BOOKING_DATE)


def test_is_slot_start_checks_grid_alignment(add_rule) -> None:
    rule = add_rule(start_time='09:00', end_time='10:00', slot_duration=20)

    assert is_slot_start(rule, 9 * 60 + 40)
    assert not is_slot_start(rule, 9 * 60 + 30)
    assert not is_slot_start(rule, 10 * 60)


def _book(db, seed, **overrides) -> Appointment:
    values = {
        'patient_id': seed.patient.id,
        'doctor_id': seed.doctor.id,
        'hospital_id': seed.hospital.id,
        'appointment_date': BOOKING_DATE,
        'appointment_time': '09:00',
        'today': date(2031, 1, 1),
    }
    values.update(overrides)
    return book_appointment(db, **values)


def test_book_appointment_inserts_pending_appointment(db, seed, add_rule) -> None:
    add_rule()

    appointment = _book(db, seed, appointment_time='9:30', notes='Recurring headaches')

    assert appointment.id is not None
    assert appointment.status == 'pending'
    assert appointment.appointment_time == '09:30'
    assert appointment.notes == 'Recurring headaches'


def test_book_appointment_honours_confirmed_status(db, seed, add_rule) -> None:
    add_rule()

    assert _book(db, seed, status='confirmed').status == 'confirmed'


def test_book_appointment_rejects_third_booking_when_capacity_is_two(db, seed, add_rule, add_appointment) -> None:
    add_rule(max_patients=2)
    add_appointment(patient_id=seed.patient.id)
    add_appointment(patient_id=seed.other_patient.id, status='confirmed')

    with pytest.raises(SlotFullError) as exception_info:
        _book(db, seed, patient_id=seed.patient.id, appointment_time='09:00')

    assert exception_info.value.status_code == 409
    assert db.query(Appointment).count() == 2


def test_book_appointment_cancelled_seat_can_be_rebooked(db, seed, add_rule, add_appointment) -> None:
    add_rule(max_patients=1)
    add_appointment(patient_id=seed.other_patient.id, status='cancelled')

    appointment = _book(db, seed)

    assert appointment.status == 'pending'


def test_book_appointment_rejects_time_off_the_slot_grid(db, seed, add_rule) -> None:
    add_rule(start_time='09:00', end_time='10:00', slot_duration=30)

    for appointment_time in ('09:15', '10:00', '08:30'):
        with pytest.raises(InvalidSlotError):
            _book(db, seed, appointment_time=appointment_time)


def test_book_appointment_rejects_inactive_rule(db, seed, add_rule) -> None:
    add_rule(is_active=False)

    with pytest.raises(InvalidSlotError):
        _book(db, seed)


def test_book_appointment_rejects_duplicate_booking_by_same_patient(db, seed, add_rule) -> None:
    add_rule(max_patients=5)
    _book(db, seed)

    with pytest.raises(DuplicateBookingError):
        _book(db, seed)

    assert db.query(Appointment).count() == 1


def test_book_appointment_validates_time_and_date(db, seed, add_rule) -> None:
    add_rule()

    with pytest.raises(ValidationError) as exception_info:
        _book(db, seed, appointment_time='9am')
    assert exception_info.value.field == 'appointment_time'

    with pytest.raises(ValidationError) as exception_info:
        _book(db, seed, today=BOOKING_DATE + timedelta(days=1))
    assert exception_info.value.field == 'appointment_date'


def test_book_appointment_unknown_entities_are_not_found(db, seed, add_rule) -> None:
    add_rule()

    for overrides in ({'doctor_id': 999}, {'hospital_id': 999}, {'patient_id': 999}):
        with pytest.raises(NotFoundError):
            _book(db, seed, **overrides)


def test_locked_rules_query_renders_for_update(db, seed) -> None:
    locked = active_rules_query(db, seed.doctor.id, seed.hospital.id, BOOKING_WEEKDAY, lock=True)
    unlocked = active_rules_query(db, seed.doctor.id, seed.hospital.id, BOOKING_WEEKDAY)

    assert 'FOR UPDATE' in str(locked.statement.compile(dialect=postgresql.dialect()))
    assert 'FOR UPDATE' not in str(unlocked.statement.compile(dialect=postgresql.dialect()))


def test_book_appointment_reads_rules_under_lock(db, seed, add_rule, monkeypatch: pytest.MonkeyPatch) -> None:
    add_rule()
    calls = []

    def recording_get_active_rules(*args, **kwargs):
        calls.append(kwargs.get('lock', False))
        return slots.active_rules_query(*args, **kwargs).all()

    monkeypatch.setattr(slots, 'get_active_rules', recording_get_active_rules)

    derive_slots(db, seed.doctor.id, seed.hospital.id, BOOKING_DATE)
    _book(db, seed)

    assert calls == [False, True]

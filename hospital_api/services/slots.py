"""Bookable slot derivation and the booking guard.

Slots are never stored. They are recomputed from the doctor's active weekly
availability rules and the appointments already holding a seat, on every call.
"""

import logging
from collections.abc import Iterator
from datetime import date

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from hospital_api.core import config
from hospital_api.core.errors import DuplicateBookingError, InvalidSlotError, SlotFullError, ValidationError
from hospital_api.models.appointment import ACTIVE_STATUSES, Appointment
from hospital_api.models.availability import Availability
from hospital_api.services import directory
from hospital_api.services.availability import format_minutes, normalize_time, parse_time

logger = logging.getLogger(__name__)


class Slot(BaseModel):
    availability_id: int
    start_time: str
    end_time: str
    is_available: bool
    booked_count: int
    max_patients: int


def weekday_index(target_date: date) -> int:
    """0 = Sunday .. 6 = Saturday, the convention of Availability.day_of_week."""
    return target_date.isoweekday() % 7


def iterate_slot_starts(start_time: str, end_time: str, slot_duration: int) -> Iterator[int]:
    """Yield slot starts (minutes since midnight) that end no later than end_time."""
    current = parse_time(start_time, 'start_time')
    end = parse_time(end_time, 'end_time')
    while current + slot_duration <= end:
        yield current
        current += slot_duration


def is_slot_start(rule: Availability, minutes: int) -> bool:
    start = parse_time(rule.start_time, 'start_time')
    end = parse_time(rule.end_time, 'end_time')
    return start <= minutes and minutes + rule.slot_duration <= end and (minutes - start) % rule.slot_duration == 0


def active_rules_query(
    db: Session,
    doctor_id: int,
    hospital_id: int,
    day_of_week: int,
    lock: bool = False,
) -> Query:
    query = db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.hospital_id == hospital_id,
        Availability.day_of_week == day_of_week,
        Availability.is_active.is_(True),
    ).order_by(Availability.id.asc())
    if lock:
        query = query.with_for_update()
    return query


def get_active_rules(
    db: Session,
    doctor_id: int,
    hospital_id: int,
    day_of_week: int,
    lock: bool = False,
) -> list[Availability]:
    return active_rules_query(db, doctor_id, hospital_id, day_of_week, lock=lock).all()


def count_booked(
    db: Session,
    doctor_id: int,
    hospital_id: int,
    target_date: date,
    appointment_time: str | None = None,
) -> dict[str, int]:
    """Seats taken per slot start; cancelled and completed appointments hold none."""
    query = db.query(Appointment.appointment_time, func.count(Appointment.id)).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.hospital_id == hospital_id,
        Appointment.appointment_date == target_date,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if appointment_time is not None:
        query = query.filter(Appointment.appointment_time == appointment_time)
    return {slot_time: count for slot_time, count in query.group_by(Appointment.appointment_time).all()}


def _generate_slots(db: Session, doctor_id: int, hospital_id: int, target_date: date) -> Iterator[Slot]:
    rules = get_active_rules(db, doctor_id, hospital_id, weekday_index(target_date))
    if not rules:
        return

    candidates = [
        (start, rule)
        for rule in rules
        for start in iterate_slot_starts(rule.start_time, rule.end_time, rule.slot_duration)
    ]
    # sorted() is stable, so equal starts keep rule evaluation order.
    candidates = sorted(candidates, key=lambda candidate: candidate[0])
    booked = count_booked(db, doctor_id, hospital_id, target_date)

    for start, rule in candidates:
        start_time = format_minutes(start)
        booked_count = booked.get(start_time, 0)
        yield Slot(
            availability_id=rule.id,
            start_time=start_time,
            end_time=format_minutes(start + rule.slot_duration),
            is_available=booked_count < rule.max_patients,
            booked_count=booked_count,
            max_patients=rule.max_patients,
        )


def iter_slots(db: Session, doctor_id: int, hospital_id: int, target_date: date) -> Iterator[Slot]:
    """Slots for one doctor, hospital and date, ordered by start time.

    Raises NotFoundError immediately for an unknown doctor or hospital; a day
    without availability simply yields nothing.
    """
    directory.get_doctor(db, doctor_id)
    directory.get_hospital(db, hospital_id)
    return _generate_slots(db, doctor_id, hospital_id, target_date)


def derive_slots(db: Session, doctor_id: int, hospital_id: int, target_date: date) -> list[Slot]:
    return list(iter_slots(db, doctor_id, hospital_id, target_date))


def book_appointment(
    db: Session,
    *,
    patient_id: int,
    doctor_id: int,
    hospital_id: int,
    appointment_date: date,
    appointment_time: str,
    notes: str | None = None,
    status: str | None = None,
    today: date | None = None,
) -> Appointment:
    """Re-check the requested slot under a row lock and insert the appointment.

    The matching availability rows are locked (SELECT ... FOR UPDATE) for the
    rest of the transaction, so concurrent bookings of the same slot recount in
    turn. The unique partial index on active appointments rejects a patient
    holding the same slot twice.
    """
    slot_time = normalize_time(appointment_time, 'appointment_time')
    if appointment_date < (today or date.today()):
        raise ValidationError('appointment_date', 'Appointments must be scheduled for today or later.')

    status = status or config.DEFAULT_APPOINTMENT_STATUS
    if status not in ACTIVE_STATUSES:
        raise ValidationError('status', 'New appointments must be pending or confirmed.')

    directory.get_doctor(db, doctor_id)
    directory.get_hospital(db, hospital_id)
    directory.get_patient(db, patient_id)

    slot_minutes = parse_time(slot_time, 'appointment_time')
    rules = get_active_rules(db, doctor_id, hospital_id, weekday_index(appointment_date), lock=True)
    matching = [rule for rule in rules if is_slot_start(rule, slot_minutes)]
    if not matching:
        db.rollback()
        raise InvalidSlotError()

    capacity = max(rule.max_patients for rule in matching)
    booked_count = count_booked(db, doctor_id, hospital_id, appointment_date, slot_time).get(slot_time, 0)
    if booked_count >= capacity:
        db.rollback()
        logger.info(
            'Rejected booking for doctor %s at hospital %s on %s %s: %s/%s seats taken.',
            doctor_id, hospital_id, appointment_date, slot_time, booked_count, capacity,
        )
        raise SlotFullError()

    appointment = Appointment(
        patient_id=patient_id,
        doctor_id=doctor_id,
        hospital_id=hospital_id,
        appointment_date=appointment_date,
        appointment_time=slot_time,
        status=status,
        notes=notes,
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateBookingError() from exc
    db.refresh(appointment)

    logger.info(
        'Booked appointment %s for patient %s with doctor %s on %s %s (%s).',
        appointment.id, patient_id, doctor_id, appointment_date, slot_time, status,
    )
    return appointment

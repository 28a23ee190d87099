"""Validation and persistence of doctors' weekly availability windows."""

import logging
import re

from sqlalchemy.orm import Session

from hospital_api.core.errors import AvailabilityConflictError, NotFoundError, ValidationError
from hospital_api.models.availability import Availability
from hospital_api.services import directory

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')
MIN_DAY_OF_WEEK = 0
MAX_DAY_OF_WEEK = 6
MIN_SLOT_DURATION_MINUTES = 15
MAX_SLOT_DURATION_MINUTES = 120
MIN_PATIENTS_PER_SLOT = 1
MAX_PATIENTS_PER_SLOT = 50

DAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')

REQUIRED_FIELDS = (
    'doctor_id',
    'hospital_id',
    'day_of_week',
    'start_time',
    'end_time',
    'slot_duration',
    'max_patients',
)
UPDATABLE_FIELDS = ('day_of_week', 'start_time', 'end_time', 'slot_duration', 'max_patients', 'is_active')


def parse_time(value, field: str) -> int:
    """Return minutes since midnight for an ``H:MM``/``HH:MM`` string."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValidationError(field, f'Invalid {field.replace("_", " ")} format. Use HH:MM format')
    hours, minutes = value.strip().split(':')
    return int(hours) * 60 + int(minutes)


def format_minutes(total_minutes: int) -> str:
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def normalize_time(value, field: str) -> str:
    return format_minutes(parse_time(value, field))


def _require_int(value, field: str, low: int, high: int, message: str) -> int:
    # bool is an int subclass.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f'{field} must be an integer')
    if value < low or value > high:
        raise ValidationError(field, message)
    return value


def validate_availability(values: dict) -> dict:
    """Check a complete availability record and return it normalized.

    Times come back zero-padded so stored values compare correctly as strings.
    """
    for field in REQUIRED_FIELDS:
        if values.get(field) is None:
            raise ValidationError(field, f'{field} is required')

    day_of_week = _require_int(
        values['day_of_week'], 'day_of_week', MIN_DAY_OF_WEEK, MAX_DAY_OF_WEEK,
        'Day of week must be between 0 and 6',
    )
    start_minutes = parse_time(values['start_time'], 'start_time')
    end_minutes = parse_time(values['end_time'], 'end_time')
    if start_minutes >= end_minutes:
        raise ValidationError('start_time', 'Start time must be before end time')

    slot_duration = _require_int(
        values['slot_duration'], 'slot_duration', MIN_SLOT_DURATION_MINUTES, MAX_SLOT_DURATION_MINUTES,
        f'Slot duration must be between {MIN_SLOT_DURATION_MINUTES} and {MAX_SLOT_DURATION_MINUTES} minutes',
    )
    max_patients = _require_int(
        values['max_patients'], 'max_patients', MIN_PATIENTS_PER_SLOT, MAX_PATIENTS_PER_SLOT,
        f'Max patients must be between {MIN_PATIENTS_PER_SLOT} and {MAX_PATIENTS_PER_SLOT}',
    )

    is_active = values.get('is_active')
    return {
        'doctor_id': values['doctor_id'],
        'hospital_id': values['hospital_id'],
        'day_of_week': day_of_week,
        'start_time': format_minutes(start_minutes),
        'end_time': format_minutes(end_minutes),
        'slot_duration': slot_duration,
        'max_patients': max_patients,
        'is_active': True if is_active is None else bool(is_active),
    }


def merge_availability_update(current: Availability, changes: dict) -> dict:
    """Overlay a partial update on the stored record and validate the result."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(field, f'{field} cannot be updated')

    merged = {
        'doctor_id': current.doctor_id,
        'hospital_id': current.hospital_id,
        'day_of_week': current.day_of_week,
        'start_time': current.start_time,
        'end_time': current.end_time,
        'slot_duration': current.slot_duration,
        'max_patients': current.max_patients,
        'is_active': current.is_active,
    }
    merged.update({field: value for field, value in changes.items() if value is not None})
    return validate_availability(merged)


def ranges_overlap(first_start: str, first_end: str, second_start: str, second_end: str) -> bool:
    return (
        parse_time(first_start, 'start_time') < parse_time(second_end, 'end_time')
        and parse_time(second_start, 'start_time') < parse_time(first_end, 'end_time')
    )


def find_overlapping_rule(db: Session, values: dict, exclude_id: int | None = None) -> Availability | None:
    query = db.query(Availability).filter(
        Availability.doctor_id == values['doctor_id'],
        Availability.hospital_id == values['hospital_id'],
        Availability.day_of_week == values['day_of_week'],
        Availability.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Availability.id != exclude_id)

    for rule in query.order_by(Availability.start_time.asc()).all():
        if ranges_overlap(values['start_time'], values['end_time'], rule.start_time, rule.end_time):
            return rule
    return None


def _ensure_no_overlap(db: Session, values: dict, exclude_id: int | None = None) -> None:
    if not values['is_active']:
        return
    clash = find_overlapping_rule(db, values, exclude_id=exclude_id)
    if clash is not None:
        raise AvailabilityConflictError(
            f'Overlaps the {DAY_NAMES[clash.day_of_week]} {clash.start_time}-{clash.end_time} window '
            f'(availability {clash.id}).'
        )


def list_doctor_availability(db: Session, doctor_id: int, hospital_id: int | None = None) -> list[Availability]:
    query = db.query(Availability).filter(Availability.doctor_id == doctor_id)
    if hospital_id is not None:
        query = query.filter(Availability.hospital_id == hospital_id)
    return query.order_by(Availability.day_of_week.asc(), Availability.start_time.asc()).all()


def list_hospital_availability(db: Session, hospital_id: int, day_of_week: int | None = None) -> list[Availability]:
    query = db.query(Availability).filter(
        Availability.hospital_id == hospital_id,
        Availability.is_active.is_(True),
    )
    if day_of_week is not None:
        query = query.filter(Availability.day_of_week == day_of_week)
    return query.order_by(Availability.day_of_week.asc(), Availability.start_time.asc()).all()


def get_availability(db: Session, availability_id: int) -> Availability:
    availability = db.query(Availability).filter(Availability.id == availability_id).first()
    if availability is None:
        raise NotFoundError('Availability not found.')
    return availability


def create_availability(db: Session, values: dict) -> Availability:
    normalized = validate_availability(values)
    directory.get_doctor(db, normalized['doctor_id'])
    directory.get_hospital(db, normalized['hospital_id'])
    _ensure_no_overlap(db, normalized)

    availability = Availability(**normalized)
    db.add(availability)
    db.commit()
    db.refresh(availability)

    logger.info(
        'Created availability %s for doctor %s at hospital %s (day %s, %s-%s).',
        availability.id, availability.doctor_id, availability.hospital_id,
        availability.day_of_week, availability.start_time, availability.end_time,
    )
    return availability


def update_availability(db: Session, availability: Availability, changes: dict) -> Availability:
    normalized = merge_availability_update(availability, changes)
    _ensure_no_overlap(db, normalized, exclude_id=availability.id)

    for field in UPDATABLE_FIELDS:
        setattr(availability, field, normalized[field])
    db.commit()
    db.refresh(availability)

    logger.info('Updated availability %s (%s).', availability.id, ', '.join(sorted(changes)) or 'no changes')
    return availability


def delete_availability(db: Session, availability: Availability) -> None:
    availability_id = availability.id
    db.delete(availability)
    db.commit()
    logger.info('Deleted availability %s.', availability_id)

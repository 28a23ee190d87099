import logging
from datetime import date, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from hospital_api.core.errors import InvalidStatusTransitionError, NotFoundError, ValidationError
from hospital_api.models.appointment import (
    ACTIVE_STATUSES,
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Appointment,
)
from hospital_api.models.doctor import Doctor
from hospital_api.models.hospital import Hospital
from hospital_api.models.patient import Patient
from hospital_api.models.user import User

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED},
    STATUS_CONFIRMED: {STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def _validate_status_filter(status: str | None) -> str | None:
    if status is None or status == 'all':
        return None
    if status not in APPOINTMENT_STATUSES:
        raise ValidationError('status', f'Status must be one of: all, {", ".join(APPOINTMENT_STATUSES)}')
    return status


def list_patient_appointments(
    db: Session,
    patient_id: int,
    status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    doctor_id: int | None = None,
    hospital_id: int | None = None,
    search: str | None = None,
) -> list[Appointment]:
    status = _validate_status_filter(status)
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)

    if status:
        query = query.filter(Appointment.status == status)
    if date_from is not None:
        query = query.filter(Appointment.appointment_date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.appointment_date <= date_to)
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if hospital_id is not None:
        query = query.filter(Appointment.hospital_id == hospital_id)
    if search and search.strip():
        pattern = f'%{search.strip()}%'
        query = (
            query.join(Doctor, Doctor.id == Appointment.doctor_id)
            .join(User, User.id == Doctor.user_id)
            .join(Hospital, Hospital.id == Appointment.hospital_id)
            .filter(
                or_(
                    User.full_name.ilike(pattern),
                    Doctor.specialization.ilike(pattern),
                    Hospital.name.ilike(pattern),
                    Appointment.notes.ilike(pattern),
                )
            )
        )

    return query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc()).all()


def list_doctor_appointments(
    db: Session,
    doctor_id: int,
    appointment_date: date | None = None,
    status: str | None = None,
) -> list[Appointment]:
    status = _validate_status_filter(status)
    query = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
    if appointment_date is not None:
        query = query.filter(Appointment.appointment_date == appointment_date)
    if status:
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()


def list_booked_times(db: Session, doctor_id: int, appointment_date: date) -> list[str]:
    rows = db.query(Appointment.appointment_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.status.in_(ACTIVE_STATUSES),
    ).order_by(Appointment.appointment_time.asc()).all()
    return [appointment_time for (appointment_time,) in rows]


def appointment_stats(db: Session, patient_id: int, now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.now()
    rows = db.query(Appointment.status, Appointment.appointment_date, Appointment.appointment_time).filter(
        Appointment.patient_id == patient_id,
    ).all()

    stats = {'total': len(rows), 'upcoming': 0, 'completed': 0, 'cancelled': 0, 'pending': 0, 'confirmed': 0}
    for status, appointment_date, appointment_time in rows:
        if status in stats:
            stats[status] += 1
        starts_at = datetime.combine(appointment_date, datetime.strptime(appointment_time, '%H:%M').time())
        if status in ACTIVE_STATUSES and starts_at > now:
            stats['upcoming'] += 1
    return stats


def change_status(db: Session, appointment: Appointment, new_status: str) -> Appointment:
    if new_status not in APPOINTMENT_STATUSES:
        raise ValidationError('status', f'Status must be one of: {", ".join(APPOINTMENT_STATUSES)}')
    if new_status == appointment.status:
        return appointment
    if new_status not in ALLOWED_TRANSITIONS.get(appointment.status, set()):
        raise InvalidStatusTransitionError(
            f'Cannot change a {appointment.status} appointment to {new_status}.'
        )

    previous = appointment.status
    appointment.status = new_status
    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s.', appointment.id, previous, new_status)
    return appointment


def cancel_appointment(db: Session, appointment: Appointment) -> Appointment:
    return change_status(db, appointment, STATUS_CANCELLED)


def _doctor_patient_summary(patient: Patient, appointments: list[Appointment]) -> dict:
    """Roster entry for one patient; ``appointments`` must be newest first."""
    last_visit = next(
        (appointment.appointment_date for appointment in appointments if appointment.status == STATUS_COMPLETED),
        None,
    )
    user = patient.user
    return {
        'patient_id': patient.id,
        'user_id': patient.user_id,
        'full_name': user.full_name if user else None,
        'email': user.email if user else None,
        'phone': user.phone if user else None,
        'date_of_birth': patient.date_of_birth,
        'gender': patient.gender,
        'latest_appointment': appointments[0] if appointments else None,
        'appointment_count': len(appointments),
        'last_visit_date': last_visit,
    }


def _newest_first(query):
    return query.order_by(
        Appointment.appointment_date.desc(),
        Appointment.appointment_time.desc(),
        Appointment.id.desc(),
    )


def list_doctor_patients(db: Session, doctor_id: int) -> list[dict]:
    """Every patient with at least one appointment with the doctor, most recently seen first."""
    appointments = _newest_first(db.query(Appointment).filter(Appointment.doctor_id == doctor_id)).all()
    if not appointments:
        return []

    by_patient: dict[int, list[Appointment]] = {}
    for appointment in appointments:
        by_patient.setdefault(appointment.patient_id, []).append(appointment)
    patients = {patient.id: patient for patient in db.query(Patient).filter(Patient.id.in_(by_patient)).all()}

    # dicts keep insertion order, so the roster follows each patient's latest appointment.
    return [
        _doctor_patient_summary(patients[patient_id], history)
        for patient_id, history in by_patient.items()
        if patient_id in patients
    ]


def get_doctor_patient_detail(db: Session, doctor_id: int, patient_id: int) -> dict:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if patient is None:
        raise NotFoundError('Patient not found.')

    history = _newest_first(
        db.query(Appointment).filter(Appointment.doctor_id == doctor_id, Appointment.patient_id == patient_id)
    ).all()
    if not history:
        raise NotFoundError('Patient has no appointments with this doctor.')

    detail = _doctor_patient_summary(patient, history)
    detail['appointment_history'] = history
    return detail

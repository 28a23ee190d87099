"""Hospitals and their service catalogue, doctor profiles and patient profiles."""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from hospital_api.core.errors import NotFoundError, ValidationError
from hospital_api.models.doctor import Doctor, DoctorHospital
from hospital_api.models.hospital import Hospital
from hospital_api.models.hospital_service import HospitalService, HospitalServiceAssignment
from hospital_api.models.patient import Patient
from hospital_api.models.user import ROLE_DOCTOR, User

logger = logging.getLogger(__name__)

HOSPITAL_REQUIRED_FIELDS = ('name', 'address', 'phone')
HOSPITAL_FIELDS = HOSPITAL_REQUIRED_FIELDS + ('email', 'website', 'description', 'image_url')
DOCTOR_PROFILE_FIELDS = (
    'specialization',
    'license_number',
    'years_of_experience',
    'bio',
    'consultation_fee',
    'image_url',
    'is_active',
)
PATIENT_PROFILE_FIELDS = ('date_of_birth', 'gender', 'emergency_contact', 'medical_history')
GENDERS = ('male', 'female', 'other')


def get_hospital(db: Session, hospital_id: int) -> Hospital:
    hospital = db.query(Hospital).filter(Hospital.id == hospital_id).first()
    if hospital is None:
        raise NotFoundError('Hospital not found.')
    return hospital


def list_hospitals(db: Session, search: str | None = None) -> list[Hospital]:
    query = db.query(Hospital)
    if search and search.strip():
        pattern = f'%{search.strip()}%'
        query = query.filter(Hospital.name.ilike(pattern) | Hospital.address.ilike(pattern))
    return query.order_by(Hospital.name.asc()).all()


def _clean_hospital_values(values: dict, partial: bool) -> dict:
    cleaned = {}
    for field in HOSPITAL_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if isinstance(value, str):
            value = value.strip() or None
        if field in HOSPITAL_REQUIRED_FIELDS and not value:
            if partial:
                raise ValidationError(field, f'Hospital {field} cannot be empty')
            raise ValidationError(field, f'Hospital {field} is required')
        cleaned[field] = value

    if not partial:
        for field in HOSPITAL_REQUIRED_FIELDS:
            if field not in cleaned:
                raise ValidationError(field, f'Hospital {field} is required')
    return cleaned


def create_hospital(db: Session, values: dict) -> Hospital:
    hospital = Hospital(**_clean_hospital_values(values, partial=False))
    db.add(hospital)
    db.commit()
    db.refresh(hospital)
    logger.info('Created hospital %s (%s).', hospital.id, hospital.name)
    return hospital


def update_hospital(db: Session, hospital: Hospital, changes: dict) -> Hospital:
    for field, value in _clean_hospital_values(changes, partial=True).items():
        setattr(hospital, field, value)
    db.commit()
    db.refresh(hospital)
    return hospital


def delete_hospital(db: Session, hospital: Hospital) -> None:
    hospital_id = hospital.id
    db.delete(hospital)
    db.commit()
    logger.info('Deleted hospital %s.', hospital_id)


def list_hospital_services(db: Session) -> list[HospitalService]:
    return db.query(HospitalService).order_by(HospitalService.category.asc(), HospitalService.name.asc()).all()


def group_services_by_category(services: list[HospitalService]) -> dict[str, list[HospitalService]]:
    grouped: dict[str, list[HospitalService]] = {}
    for service in services:
        grouped.setdefault(service.category, []).append(service)
    return grouped


def create_hospital_service(db: Session, values: dict) -> HospitalService:
    cleaned = {}
    for field in ('name', 'category'):
        value = (values.get(field) or '').strip()
        if not value:
            raise ValidationError(field, f'Service {field} is required')
        cleaned[field] = value
    if db.query(HospitalService).filter(func.lower(HospitalService.name) == cleaned['name'].lower()).first():
        raise ValidationError('name', 'A service with this name already exists')

    service = HospitalService(description=(values.get('description') or '').strip() or None, **cleaned)
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info('Created hospital service %s (%s).', service.id, service.name)
    return service


def list_assigned_services(db: Session, hospital_id: int) -> list[HospitalService]:
    assignments = (
        db.query(HospitalServiceAssignment)
        .join(HospitalService, HospitalService.id == HospitalServiceAssignment.service_id)
        .filter(HospitalServiceAssignment.hospital_id == hospital_id)
        .order_by(HospitalService.category.asc(), HospitalService.name.asc())
        .all()
    )
    return [assignment.service for assignment in assignments]


def assign_services_to_hospital(db: Session, hospital: Hospital, service_ids: list[int]) -> list[HospitalService]:
    """Replace the hospital's offered services with ``service_ids``."""
    service_ids = list(dict.fromkeys(service_ids))
    if service_ids:
        found = {
            service_id
            for (service_id,) in db.query(HospitalService.id).filter(HospitalService.id.in_(service_ids)).all()
        }
        missing = [service_id for service_id in service_ids if service_id not in found]
        if missing:
            raise NotFoundError(f'Hospital service {missing[0]} not found.')

    db.query(HospitalServiceAssignment).filter(HospitalServiceAssignment.hospital_id == hospital.id).delete(
        synchronize_session=False
    )
    db.add_all(
        HospitalServiceAssignment(hospital_id=hospital.id, service_id=service_id) for service_id in service_ids
    )
    db.commit()
    logger.info('Hospital %s now offers services %s.', hospital.id, service_ids)
    return list_assigned_services(db, hospital.id)


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found.')
    return doctor


def find_doctor_for_user(db: Session, user: User) -> Doctor | None:
    return db.query(Doctor).filter(Doctor.user_id == user.id).first()


def get_doctor_for_user(db: Session, user: User) -> Doctor:
    doctor = find_doctor_for_user(db, user)
    if doctor is None:
        raise NotFoundError('Doctor profile not found.')
    return doctor


def list_doctors(
    db: Session,
    hospital_id: int | None = None,
    specialization: str | None = None,
    include_inactive: bool = False,
) -> list[Doctor]:
    query = db.query(Doctor)
    if not include_inactive:
        query = query.filter(Doctor.is_active.is_(True))
    if hospital_id is not None:
        query = query.join(DoctorHospital).filter(DoctorHospital.hospital_id == hospital_id)
    if specialization and specialization.strip():
        query = query.filter(Doctor.specialization.ilike(f'%{specialization.strip()}%'))
    return query.order_by(Doctor.id.asc()).all()


def _set_doctor_hospitals(db: Session, doctor: Doctor, hospital_ids: list[int], primary_hospital_id: int) -> None:
    if not hospital_ids:
        raise ValidationError('hospital_ids', 'At least one hospital is required')
    if primary_hospital_id not in hospital_ids:
        raise ValidationError('primary_hospital_id', 'Primary hospital must be one of the selected hospitals')
    for hospital_id in hospital_ids:
        get_hospital(db, hospital_id)

    if doctor.id is not None:
        # Old links must be gone before re-inserting under uq_doctor_hospital.
        doctor.hospitals.clear()
        db.flush()
    doctor.hospitals = [
        DoctorHospital(hospital_id=hospital_id, is_primary=hospital_id == primary_hospital_id)
        for hospital_id in dict.fromkeys(hospital_ids)
    ]


def create_doctor(db: Session, values: dict) -> Doctor:
    user = db.query(User).filter(User.id == values.get('user_id')).first()
    if user is None:
        raise NotFoundError('User not found.')
    if user.role != ROLE_DOCTOR:
        raise ValidationError('user_id', 'User must have the doctor role')
    if find_doctor_for_user(db, user) is not None:
        raise ValidationError('user_id', 'User already has a doctor profile')

    doctor = Doctor(user_id=user.id, **{field: values[field] for field in DOCTOR_PROFILE_FIELDS if field in values})
    _set_doctor_hospitals(db, doctor, values.get('hospital_ids') or [], values.get('primary_hospital_id'))
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    logger.info('Created doctor %s for user %s.', doctor.id, user.id)
    return doctor


def update_doctor(db: Session, doctor: Doctor, changes: dict) -> Doctor:
    for field in DOCTOR_PROFILE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(doctor, field, changes[field])

    if changes.get('hospital_ids') is not None:
        primary = changes.get('primary_hospital_id')
        if primary is None:
            primary = next((link.hospital_id for link in doctor.hospitals if link.is_primary), None)
        _set_doctor_hospitals(db, doctor, changes['hospital_ids'], primary)

    db.commit()
    db.refresh(doctor)
    return doctor


def delete_doctor(db: Session, doctor: Doctor) -> None:
    doctor_id = doctor.id
    db.delete(doctor)
    db.commit()
    logger.info('Deleted doctor %s.', doctor_id)


def find_patient_for_user(db: Session, user: User) -> Patient | None:
    return db.query(Patient).filter(Patient.user_id == user.id).first()


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if patient is None:
        raise NotFoundError('Patient not found.')
    return patient


def get_patient_for_user(db: Session, user: User) -> Patient:
    patient = find_patient_for_user(db, user)
    if patient is None:
        raise NotFoundError('Patient profile not found.')
    return patient


def upsert_patient_profile(db: Session, user: User, changes: dict) -> Patient:
    gender = changes.get('gender')
    if gender is not None and gender not in GENDERS:
        raise ValidationError('gender', 'Gender must be male, female or other')

    patient = find_patient_for_user(db, user)
    if patient is None:
        patient = Patient(user_id=user.id)
        db.add(patient)

    for field in PATIENT_PROFILE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(patient, field, changes[field])
    for field in ('full_name', 'phone'):
        if changes.get(field) is not None:
            setattr(user, field, changes[field].strip() or None)

    db.commit()
    db.refresh(patient)
    return patient

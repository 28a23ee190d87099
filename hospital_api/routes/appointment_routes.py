from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from hospital_api.auth.dependencies import get_current_user
from hospital_api.auth.policies import require_allowed, require_role
from hospital_api.core.errors import ValidationError
from hospital_api.database import ensure_database_ready, get_db, storage_errors
from hospital_api.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User
from hospital_api.services import appointments as appointment_service
from hospital_api.services import directory
from hospital_api.services.slots import book_appointment

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    hospital_id: int
    appointment_date: date
    appointment_time: str
    notes: str | None = None
    # Only honoured for admins booking on a patient's behalf.
    patient_id: int | None = None

    @field_validator('appointment_time')
    @classmethod
    def strip_time(cls, value: str) -> str:
        return value.strip()

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateAppointmentStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower()


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    hospital_id: int
    appointment_date: date
    appointment_time: str
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentStatsResponse(BaseModel):
    total: int
    upcoming: int
    completed: int
    cancelled: int
    pending: int
    confirmed: int


class DoctorPatientResponse(BaseModel):
    patient_id: int
    user_id: int
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    latest_appointment: AppointmentResponse | None = None
    appointment_count: int
    last_visit_date: date | None = None


class DoctorPatientDetailResponse(DoctorPatientResponse):
    appointment_history: list[AppointmentResponse]


def _roster_fields(entry: dict) -> dict:
    fields = {key: value for key, value in entry.items() if key != 'appointment_history'}
    latest = entry['latest_appointment']
    fields['latest_appointment'] = AppointmentResponse.model_validate(latest) if latest is not None else None
    return fields


def _resolve_booking_patient_id(db: Session, current_user: User, requested_patient_id: int | None) -> int:
    if current_user.role == ROLE_ADMIN:
        if requested_patient_id is None:
            raise ValidationError('patient_id', 'patient_id is required when booking on behalf of a patient')
        return directory.get_patient(db, requested_patient_id).id
    return directory.get_patient_for_user(db, current_user).id


def _resolve_doctor_id(db: Session, current_user: User, doctor_id: int | None, action: str) -> int:
    """Doctors act on their own id; admins must name the doctor."""
    if current_user.role == ROLE_DOCTOR:
        own_doctor_id = directory.get_doctor_for_user(db, current_user).id
        require_allowed(
            current_user.role, own_doctor_id, doctor_id if doctor_id is not None else own_doctor_id,
            f'Forbidden: You can only view your own {action}',
        )
        return own_doctor_id
    if doctor_id is None:
        raise ValidationError('doctor_id', 'doctor_id is required')
    return doctor_id


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT, ROLE_ADMIN, message='Only patients can book appointments.')
    ensure_database_ready()

    with storage_errors(db, 'booking an appointment'):
        patient_id = _resolve_booking_patient_id(db, current_user, data.patient_id)
        return book_appointment(
            db,
            patient_id=patient_id,
            doctor_id=data.doctor_id,
            hospital_id=data.hospital_id,
            appointment_date=data.appointment_date,
            appointment_time=data.appointment_time,
            notes=data.notes,
        )


@router.get('/me', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    doctor_id: int | None = Query(default=None),
    hospital_id: int | None = Query(default=None),
    search: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT, message='Only patients can view their own appointments.')
    ensure_database_ready()

    with storage_errors(db, 'listing patient appointments'):
        patient = directory.find_patient_for_user(db, current_user)
        if patient is None:
            return []
        return appointment_service.list_patient_appointments(
            db,
            patient.id,
            status=status_filter,
            date_from=date_from,
            date_to=date_to,
            doctor_id=doctor_id,
            hospital_id=hospital_id,
            search=search,
        )


@router.get('/me/stats', response_model=AppointmentStatsResponse)
def my_appointment_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT, message='Only patients can view their own appointments.')
    ensure_database_ready()

    with storage_errors(db, 'computing appointment stats'):
        patient = directory.find_patient_for_user(db, current_user)
        if patient is None:
            return AppointmentStatsResponse(total=0, upcoming=0, completed=0, cancelled=0, pending=0, confirmed=0)
        return AppointmentStatsResponse(**appointment_service.appointment_stats(db, patient.id))


@router.get('/doctor', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int | None = Query(default=None),
    appointment_date: date | None = Query(default=None, alias='date'),
    status_filter: str | None = Query(default=None, alias='status'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    ensure_database_ready()

    with storage_errors(db, 'listing doctor appointments'):
        doctor_id = _resolve_doctor_id(db, current_user, doctor_id, 'appointments')
        return appointment_service.list_doctor_appointments(
            db, doctor_id, appointment_date=appointment_date, status=status_filter,
        )


@router.get('/doctor/patients', response_model=list[DoctorPatientResponse])
def list_doctor_patients(
    doctor_id: int | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    ensure_database_ready()

    with storage_errors(db, 'listing doctor patients'):
        doctor_id = _resolve_doctor_id(db, current_user, doctor_id, 'patients')
        return [
            DoctorPatientResponse(**_roster_fields(entry))
            for entry in appointment_service.list_doctor_patients(db, doctor_id)
        ]


@router.get('/doctor/patients/{patient_id}', response_model=DoctorPatientDetailResponse)
def get_doctor_patient(
    patient_id: int,
    doctor_id: int | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    ensure_database_ready()

    with storage_errors(db, 'loading a doctor patient'):
        doctor_id = _resolve_doctor_id(db, current_user, doctor_id, 'patients')
        detail = appointment_service.get_doctor_patient_detail(db, doctor_id, patient_id)
        return DoctorPatientDetailResponse(
            **_roster_fields(detail),
            appointment_history=[
                AppointmentResponse.model_validate(appointment) for appointment in detail['appointment_history']
            ],
        )


@router.get('/booked-times', response_model=list[str])
def list_booked_times(
    doctor_id: int = Query(...),
    appointment_date: date = Query(..., alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    with storage_errors(db, 'listing booked times'):
        return appointment_service.list_booked_times(db, doctor_id, appointment_date)


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    ensure_database_ready()

    with storage_errors(db, 'updating appointment status'):
        appointment = appointment_service.get_appointment(db, appointment_id)
        caller_doctor_id = None
        if current_user.role == ROLE_DOCTOR:
            caller_doctor_id = directory.get_doctor_for_user(db, current_user).id
        require_allowed(
            current_user.role, caller_doctor_id, appointment.doctor_id,
            'Forbidden: You can only manage your own appointments',
        )
        return appointment_service.change_status(db, appointment, data.status)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_my_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT, message='Only patients can cancel their own appointments.')
    ensure_database_ready()

    with storage_errors(db, 'cancelling an appointment'):
        appointment = appointment_service.get_appointment(db, appointment_id)
        patient = directory.find_patient_for_user(db, current_user)
        require_allowed(
            current_user.role, patient.id if patient else None, appointment.patient_id,
            'Only the patient who booked this appointment can cancel it.',
        )
        return appointment_service.cancel_appointment(db, appointment)

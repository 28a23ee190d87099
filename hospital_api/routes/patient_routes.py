from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hospital_api.auth.dependencies import get_current_user
from hospital_api.auth.policies import require_role
from hospital_api.database import ensure_database_ready, get_db, storage_errors
from hospital_api.models.patient import Patient
from hospital_api.models.user import ROLE_PATIENT, User
from hospital_api.services import directory

router = APIRouter(tags=['patients'])


class UpdatePatientProfileRequest(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    emergency_contact: str | None = None
    medical_history: str | None = None


class PatientProfileResponse(BaseModel):
    id: int
    user_id: int
    email: str
    full_name: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    emergency_contact: str | None = None
    medical_history: str | None = None


def to_profile_response(user: User, patient: Patient) -> PatientProfileResponse:
    return PatientProfileResponse(
        id=patient.id,
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        date_of_birth=patient.date_of_birth,
        gender=patient.gender,
        emergency_contact=patient.emergency_contact,
        medical_history=patient.medical_history,
    )


@router.get('/me', response_model=PatientProfileResponse)
def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT)
    ensure_database_ready()

    with storage_errors(db, 'loading a patient profile'):
        return to_profile_response(current_user, directory.get_patient_for_user(db, current_user))


@router.put('/me', response_model=PatientProfileResponse)
def update_my_profile(
    data: UpdatePatientProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_PATIENT)
    ensure_database_ready()

    with storage_errors(db, 'updating a patient profile'):
        patient = directory.upsert_patient_profile(db, current_user, data.model_dump(exclude_unset=True))
        return to_profile_response(current_user, patient)

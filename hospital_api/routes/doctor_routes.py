from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hospital_api.auth.dependencies import get_current_user
from hospital_api.auth.policies import require_role
from hospital_api.database import ensure_database_ready, get_db, storage_errors
from hospital_api.models.doctor import Doctor
from hospital_api.models.user import ROLE_ADMIN, User
from hospital_api.routes.availability_routes import MessageResponse
from hospital_api.services import directory

router = APIRouter(tags=['doctors'])


class CreateDoctorRequest(BaseModel):
    user_id: int
    specialization: str = Field(min_length=1)
    license_number: str = Field(min_length=1)
    years_of_experience: int = Field(default=0, ge=0)
    bio: str | None = None
    consultation_fee: Decimal = Field(default=Decimal('0'), ge=0)
    image_url: str | None = None
    hospital_ids: list[int]
    primary_hospital_id: int


class UpdateDoctorRequest(BaseModel):
    specialization: str | None = Field(default=None, min_length=1)
    license_number: str | None = Field(default=None, min_length=1)
    years_of_experience: int | None = Field(default=None, ge=0)
    bio: str | None = None
    consultation_fee: Decimal | None = Field(default=None, ge=0)
    image_url: str | None = None
    is_active: bool | None = None
    hospital_ids: list[int] | None = None
    primary_hospital_id: int | None = None


class DoctorHospitalResponse(BaseModel):
    hospital_id: int
    hospital_name: str
    is_primary: bool


class DoctorResponse(BaseModel):
    id: int
    user_id: int
    full_name: str | None = None
    email: str | None = None
    specialization: str
    license_number: str
    years_of_experience: int
    bio: str | None = None
    consultation_fee: Decimal
    image_url: str | None = None
    is_active: bool
    hospitals: list[DoctorHospitalResponse]


def to_doctor_response(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        user_id=doctor.user_id,
        full_name=doctor.user.full_name if doctor.user else None,
        email=doctor.user.email if doctor.user else None,
        specialization=doctor.specialization,
        license_number=doctor.license_number,
        years_of_experience=doctor.years_of_experience or 0,
        bio=doctor.bio,
        consultation_fee=doctor.consultation_fee or Decimal('0'),
        image_url=doctor.image_url,
        is_active=bool(doctor.is_active),
        hospitals=[
            DoctorHospitalResponse(
                hospital_id=link.hospital_id,
                hospital_name=link.hospital.name if link.hospital else '',
                is_primary=bool(link.is_primary),
            )
            for link in doctor.hospitals
        ],
    )


@router.get('', response_model=list[DoctorResponse])
def list_doctors(
    hospital_id: int | None = Query(default=None),
    specialization: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    with storage_errors(db, 'listing doctors'):
        return [to_doctor_response(doctor) for doctor in directory.list_doctors(db, hospital_id, specialization)]


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    with storage_errors(db, 'loading a doctor'):
        return to_doctor_response(directory.get_doctor(db, doctor_id))


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'creating a doctor'):
        return to_doctor_response(directory.create_doctor(db, data.model_dump()))


@router.put('/{doctor_id}', response_model=DoctorResponse)
def update_doctor(
    doctor_id: int,
    data: UpdateDoctorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'updating a doctor'):
        doctor = directory.get_doctor(db, doctor_id)
        return to_doctor_response(directory.update_doctor(db, doctor, data.model_dump(exclude_unset=True)))


@router.delete('/{doctor_id}', response_model=MessageResponse)
def delete_doctor(
    doctor_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'deleting a doctor'):
        directory.delete_doctor(db, directory.get_doctor(db, doctor_id))

    return MessageResponse(message='Doctor deleted successfully')

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from hospital_api.auth.dependencies import get_current_user
from hospital_api.auth.policies import require_allowed, require_role
from hospital_api.database import ensure_database_ready, get_db, storage_errors
from hospital_api.models.user import ROLE_ADMIN, ROLE_DOCTOR, User
from hospital_api.services import availability as availability_service
from hospital_api.services import directory
from hospital_api.services.slots import Slot, derive_slots

router = APIRouter(tags=['availability'])


def _strip_time(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else value


class CreateAvailabilityRequest(BaseModel):
    # Optional at the schema level so a missing field is reported by name with a 400.
    doctor_id: int | None = None
    hospital_id: int | None = None
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    slot_duration: int | None = None
    max_patients: int | None = None
    is_active: bool | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_times(cls, value: str | None) -> str | None:
        return _strip_time(value)


class UpdateAvailabilityRequest(BaseModel):
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    slot_duration: int | None = None
    max_patients: int | None = None
    is_active: bool | None = None

    class Config:
        extra = 'forbid'

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_times(cls, value: str | None) -> str | None:
        return _strip_time(value)


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    hospital_id: int
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int
    max_patients: int
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str


def get_caller_doctor_id(db: Session, user: User) -> int | None:
    """The doctor id a doctor may act for; admins are not tied to one."""
    if user.role != ROLE_DOCTOR:
        return None
    return directory.get_doctor_for_user(db, user).id


def _load_owned_availability(db: Session, current_user: User, availability_id: int, action: str):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    availability = availability_service.get_availability(db, availability_id)
    require_allowed(
        current_user.role,
        get_caller_doctor_id(db, current_user),
        availability.doctor_id,
        f'Forbidden: You can only {action} your own availability',
    )
    return availability


@router.get('', response_model=list[AvailabilityResponse])
def list_availability(
    doctor_id: int = Query(...),
    hospital_id: int | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    with storage_errors(db, 'listing availability'):
        return availability_service.list_doctor_availability(db, doctor_id, hospital_id)


@router.get('/slots', response_model=list[Slot])
def list_slots(
    doctor_id: int = Query(...),
    hospital_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    del current_user
    ensure_database_ready()

    with storage_errors(db, 'deriving slots'):
        return derive_slots(db, doctor_id, hospital_id, slot_date)


@router.post('', response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_availability(
    data: CreateAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN, ROLE_DOCTOR, message='Forbidden: Admin or Doctor access required')
    ensure_database_ready()

    with storage_errors(db, 'creating availability'):
        require_allowed(
            current_user.role,
            get_caller_doctor_id(db, current_user),
            data.doctor_id,
            'Doctors can only create availability for themselves',
        )
        return availability_service.create_availability(db, data.model_dump())


@router.get('/{availability_id}', response_model=AvailabilityResponse)
def get_availability(
    availability_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with storage_errors(db, 'loading availability'):
        return _load_owned_availability(db, current_user, availability_id, 'view')


@router.put('/{availability_id}', response_model=AvailabilityResponse)
def update_availability(
    availability_id: int,
    data: UpdateAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with storage_errors(db, 'updating availability'):
        availability = _load_owned_availability(db, current_user, availability_id, 'update')
        return availability_service.update_availability(db, availability, data.model_dump(exclude_unset=True))


@router.delete('/{availability_id}', response_model=MessageResponse)
def delete_availability(
    availability_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with storage_errors(db, 'deleting availability'):
        availability = _load_owned_availability(db, current_user, availability_id, 'delete')
        availability_service.delete_availability(db, availability)

    return MessageResponse(message='Availability deleted successfully')

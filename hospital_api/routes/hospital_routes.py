from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hospital_api.auth.dependencies import get_current_user
from hospital_api.auth.policies import require_role
from hospital_api.core.errors import ValidationError
from hospital_api.database import ensure_database_ready, get_db, storage_errors
from hospital_api.models.user import ROLE_ADMIN, User
from hospital_api.routes.availability_routes import AvailabilityResponse, MessageResponse
from hospital_api.services import availability as availability_service
from hospital_api.services import directory

router = APIRouter(tags=['hospitals'])


class HospitalRequest(BaseModel):
    name: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    description: str | None = None
    image_url: str | None = None


class HospitalResponse(BaseModel):
    id: int
    name: str
    address: str
    phone: str
    email: str | None = None
    website: str | None = None
    description: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class HospitalServiceRequest(BaseModel):
    name: str | None = None
    category: str | None = None
    description: str | None = None


class HospitalServiceResponse(BaseModel):
    id: int
    name: str
    category: str
    description: str | None = None

    class Config:
        from_attributes = True


class AssignServicesRequest(BaseModel):
    service_ids: list[int]


@router.get('', response_model=list[HospitalResponse])
def list_hospitals(search: str | None = Query(default=None), db: Session = Depends(get_db)):
    with storage_errors(db, 'listing hospitals'):
        return directory.list_hospitals(db, search=search)


@router.get('/services', response_model=list[HospitalServiceResponse])
def list_hospital_services(db: Session = Depends(get_db)):
    with storage_errors(db, 'listing hospital services'):
        return directory.list_hospital_services(db)


@router.get('/services/by-category', response_model=dict[str, list[HospitalServiceResponse]])
def list_hospital_services_by_category(db: Session = Depends(get_db)):
    with storage_errors(db, 'listing hospital services'):
        return directory.group_services_by_category(directory.list_hospital_services(db))


@router.post('/services', response_model=HospitalServiceResponse, status_code=status.HTTP_201_CREATED)
def create_hospital_service(
    data: HospitalServiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'creating a hospital service'):
        return directory.create_hospital_service(db, data.model_dump())


@router.get('/{hospital_id}/services', response_model=list[HospitalServiceResponse])
def list_assigned_services(hospital_id: int, db: Session = Depends(get_db)):
    with storage_errors(db, 'listing assigned hospital services'):
        directory.get_hospital(db, hospital_id)
        return directory.list_assigned_services(db, hospital_id)


@router.put('/{hospital_id}/services', response_model=list[HospitalServiceResponse])
def assign_hospital_services(
    hospital_id: int,
    data: AssignServicesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'assigning hospital services'):
        hospital = directory.get_hospital(db, hospital_id)
        return directory.assign_services_to_hospital(db, hospital, data.service_ids)


@router.get('/{hospital_id}', response_model=HospitalResponse)
def get_hospital(hospital_id: int, db: Session = Depends(get_db)):
    with storage_errors(db, 'loading a hospital'):
        return directory.get_hospital(db, hospital_id)


@router.get('/{hospital_id}/availability', response_model=list[AvailabilityResponse])
def list_hospital_availability(
    hospital_id: int,
    day_of_week: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if day_of_week is not None and not 0 <= day_of_week <= 6:
        raise ValidationError('day_of_week', 'Day of week must be between 0 and 6')
    ensure_database_ready()

    with storage_errors(db, 'listing hospital availability'):
        directory.get_hospital(db, hospital_id)
        return availability_service.list_hospital_availability(db, hospital_id, day_of_week)


@router.post('', response_model=HospitalResponse, status_code=status.HTTP_201_CREATED)
def create_hospital(
    data: HospitalRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'creating a hospital'):
        return directory.create_hospital(db, data.model_dump(exclude_unset=True))


@router.put('/{hospital_id}', response_model=HospitalResponse)
def update_hospital(
    hospital_id: int,
    data: HospitalRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'updating a hospital'):
        hospital = directory.get_hospital(db, hospital_id)
        return directory.update_hospital(db, hospital, data.model_dump(exclude_unset=True))


@router.delete('/{hospital_id}', response_model=MessageResponse)
def delete_hospital(
    hospital_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    ensure_database_ready()

    with storage_errors(db, 'deleting a hospital'):
        directory.delete_hospital(db, directory.get_hospital(db, hospital_id))

    return MessageResponse(message='Hospital deleted successfully')

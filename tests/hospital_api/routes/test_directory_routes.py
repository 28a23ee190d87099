import pytest
from fastapi import HTTPException

from hospital_api.core.errors import StorageError
from hospital_api.models.hospital import Hospital
from hospital_api.routes import doctor_routes, hospital_routes, patient_routes
from hospital_api.routes.doctor_routes import UpdateDoctorRequest
from hospital_api.routes.hospital_routes import (
    AssignServicesRequest,
    HospitalRequest,
    HospitalServiceRequest,
    assign_hospital_services,
    create_hospital,
    create_hospital_service,
    list_assigned_services,
    list_hospital_services_by_category,
)
from hospital_api.routes.patient_routes import UpdatePatientProfileRequest


def _failing_schema_check() -> None:
    raise StorageError()


def test_create_hospital_stops_when_schema_check_fails(db, seed, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('hospital_api.routes.hospital_routes.ensure_database_ready', _failing_schema_check)

    with pytest.raises(HTTPException) as exception_info:
        hospital_routes.create_hospital(
            HospitalRequest(name='Mercy West', address='3 Elm St', phone='555-0300'),
            current_user=seed.admin,
            db=db,
        )

    assert exception_info.value.status_code == 500
    assert db.query(Hospital).count() == 2


def test_update_doctor_stops_when_schema_check_fails(db, seed, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('hospital_api.routes.doctor_routes.ensure_database_ready', _failing_schema_check)

    with pytest.raises(HTTPException) as exception_info:
        doctor_routes.update_doctor(
            seed.doctor.id, UpdateDoctorRequest(years_of_experience=40), current_user=seed.admin, db=db,
        )

    assert exception_info.value.status_code == 500
    db.refresh(seed.doctor)
    assert seed.doctor.years_of_experience == 20


def test_update_patient_profile_stops_when_schema_check_fails(db, seed, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('hospital_api.routes.patient_routes.ensure_database_ready', _failing_schema_check)

    with pytest.raises(HTTPException) as exception_info:
        patient_routes.update_my_profile(
            UpdatePatientProfileRequest(gender='other'), current_user=seed.patient_user, db=db,
        )

    assert exception_info.value.status_code == 500
    db.refresh(seed.patient)
    assert seed.patient.gender is None


def test_create_hospital_requires_admin(db, seed) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_hospital(HospitalRequest(name='X', address='Y', phone='1'), current_user=seed.doctor_user, db=db)

    assert exception_info.value.status_code == 403


def test_hospital_service_catalogue_routes(db, seed) -> None:
    scan = create_hospital_service(
        HospitalServiceRequest(name='MRI', category='Imaging'), current_user=seed.admin, db=db,
    )
    triage = create_hospital_service(
        HospitalServiceRequest(name='Triage', category='Acute', description='Walk-in assessment'),
        current_user=seed.admin,
        db=db,
    )

    assigned = assign_hospital_services(
        seed.hospital.id, AssignServicesRequest(service_ids=[scan.id, triage.id]), current_user=seed.admin, db=db,
    )

    assert [service.name for service in assigned] == ['Triage', 'MRI']
    assert [service.id for service in list_assigned_services(seed.hospital.id, db=db)] == [triage.id, scan.id]
    assert {
        category: [service.name for service in services]
        for category, services in list_hospital_services_by_category(db=db).items()
    } == {'Acute': ['Triage'], 'Imaging': ['MRI']}


def test_assign_hospital_services_requires_admin_and_known_hospital(db, seed) -> None:
    with pytest.raises(HTTPException) as exception_info:
        assign_hospital_services(
            seed.hospital.id, AssignServicesRequest(service_ids=[]), current_user=seed.doctor_user, db=db,
        )
    assert exception_info.value.status_code == 403

    with pytest.raises(HTTPException) as exception_info:
        assign_hospital_services(999, AssignServicesRequest(service_ids=[]), current_user=seed.admin, db=db)
    assert exception_info.value.status_code == 404

    with pytest.raises(HTTPException) as exception_info:
        list_assigned_services(999, db=db)
    assert exception_info.value.status_code == 404

import os
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from hospital_api.database import Base  # noqa: E402
from hospital_api.models import appointment, availability, doctor, hospital, hospital_service, patient, user  # noqa: E402,F401
from hospital_api.models.availability import Availability  # noqa: E402
from hospital_api.models.doctor import Doctor, DoctorHospital  # noqa: E402
from hospital_api.models.hospital import Hospital  # noqa: E402
from hospital_api.models.patient import Patient  # noqa: E402
from hospital_api.models.user import User  # noqa: E402

# A Tuesday far enough ahead that "no bookings in the past" never trips.
BOOKING_DATE = date(2031, 3, 4)
BOOKING_WEEKDAY = BOOKING_DATE.isoweekday() % 7


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in ('availability_routes', 'appointment_routes', 'hospital_routes', 'doctor_routes', 'patient_routes'):
        monkeypatch.setattr(f'hospital_api.routes.{module}.ensure_database_ready', lambda: None)


def _add(db, instance):
    db.add(instance)
    db.commit()
    db.refresh(instance)
    return instance


@pytest.fixture
def seed(db):
    """Two doctors, two hospitals, two patients and an admin."""
    admin = _add(db, User(email='admin@example.com', full_name='Ada Admin', role='admin'))
    doctor_user = _add(db, User(email='house@example.com', full_name='Greg House', role='doctor'))
    other_doctor_user = _add(db, User(email='grey@example.com', full_name='Meredith Grey', role='doctor'))
    patient_user = _add(db, User(email='pat@example.com', full_name='Pat Patient', role='patient'))
    other_patient_user = _add(db, User(email='sam@example.com', full_name='Sam Sick', role='patient'))

    general = _add(db, Hospital(name='Princeton General', address='1 Main St', phone='555-0100'))
    seattle = _add(db, Hospital(name='Seattle Grace', address='2 Pine St', phone='555-0200'))

    house = Doctor(user_id=doctor_user.id, specialization='Diagnostics', license_number='NJ-1', years_of_experience=20)
    house.hospitals = [DoctorHospital(hospital_id=general.id, is_primary=True)]
    house = _add(db, house)
    grey = Doctor(user_id=other_doctor_user.id, specialization='General Surgery', license_number='WA-2')
    grey.hospitals = [DoctorHospital(hospital_id=seattle.id, is_primary=True)]
    grey = _add(db, grey)

    pat = _add(db, Patient(user_id=patient_user.id))
    sam = _add(db, Patient(user_id=other_patient_user.id))

    return SimpleNamespace(
        admin=admin,
        doctor_user=doctor_user,
        other_doctor_user=other_doctor_user,
        patient_user=patient_user,
        other_patient_user=other_patient_user,
        hospital=general,
        other_hospital=seattle,
        doctor=house,
        other_doctor=grey,
        patient=pat,
        other_patient=sam,
    )


@pytest.fixture
def add_rule(db, seed):
    def _add_rule(**overrides) -> Availability:
        values = {
            'doctor_id': seed.doctor.id,
            'hospital_id': seed.hospital.id,
            'day_of_week': BOOKING_WEEKDAY,
            'start_time': '09:00',
            'end_time': '10:00',
            'slot_duration': 30,
            'max_patients': 2,
            'is_active': True,
        }
        values.update(overrides)
        return _add(db, Availability(**values))

    return _add_rule


@pytest.fixture
def add_appointment(db, seed):
    def _add_appointment(**overrides) -> appointment.Appointment:
        values = {
            'patient_id': seed.patient.id,
            'doctor_id': seed.doctor.id,
            'hospital_id': seed.hospital.id,
            'appointment_date': BOOKING_DATE,
            'appointment_time': '09:00',
            'status': 'pending',
        }
        values.update(overrides)
        return _add(db, appointment.Appointment(**values))

    return _add_appointment

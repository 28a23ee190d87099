import logging

import pytest
from sqlalchemy import inspect, text

from hospital_api import database


@pytest.fixture
def schema_engine(db_engine, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(database, 'engine', db_engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)
    monkeypatch.setattr(database, '_availability_schema_checked', False)
    return db_engine


def _index_names(engine) -> set[str]:
    return {index['name'] for index in inspect(engine).get_indexes('appointments')}


def test_ensure_appointment_schema_creates_active_booking_index(schema_engine) -> None:
    with schema_engine.begin() as connection:
        connection.execute(text('DROP INDEX uq_appointments_active_booking'))

    database.ensure_appointment_schema()

    assert 'uq_appointments_active_booking' in _index_names(schema_engine)
    assert database._appointment_schema_checked is True


def test_duplicate_active_bookings_are_logged_without_blocking_schema_check(
    db, schema_engine, seed, add_appointment, caplog: pytest.LogCaptureFixture
) -> None:
    with schema_engine.begin() as connection:
        connection.execute(text('DROP INDEX uq_appointments_active_booking'))
    doctor_id, hospital_id = seed.doctor.id, seed.hospital.id
    add_appointment()
    add_appointment()

    with caplog.at_level(logging.ERROR, logger='hospital_api.database'):
        database.ensure_database_ready()

    assert database._appointment_schema_checked is True
    assert 'uq_appointments_active_booking' not in _index_names(schema_engine)
    assert 'idx_appointments_slot' in _index_names(schema_engine)
    assert f'({doctor_id}, {hospital_id}, ' in caplog.text
    assert ', 2)' in caplog.text

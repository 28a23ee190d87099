import logging
from contextlib import contextmanager
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from hospital_api.core import config
from hospital_api.core.errors import StorageError

logger = logging.getLogger(__name__)

engine = create_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

ACTIVE_BOOKING_INDEX = (
    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_booking '
    'ON appointments(doctor_id, hospital_id, appointment_date, appointment_time, patient_id) '
    "WHERE status IN ('pending', 'confirmed')"
)

DUPLICATE_ACTIVE_BOOKINGS = (
    'SELECT doctor_id, hospital_id, appointment_date, appointment_time, patient_id, COUNT(*) '
    'FROM appointments '
    "WHERE status IN ('pending', 'confirmed') "
    'GROUP BY doctor_id, hospital_id, appointment_date, appointment_time, patient_id '
    'HAVING COUNT(*) > 1'
)

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'doctor_availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        # Older deployments only stored an is_available flag per window.
        existing_columns = {column['name'] for column in inspector.get_columns('doctor_availability')}
        migration_steps = [
            ('slot_duration', 'ALTER TABLE doctor_availability ADD COLUMN slot_duration INTEGER NOT NULL DEFAULT 30'),
            ('max_patients', 'ALTER TABLE doctor_availability ADD COLUMN max_patients INTEGER NOT NULL DEFAULT 1'),
            ('is_active', 'ALTER TABLE doctor_availability ADD COLUMN is_active BOOLEAN NOT NULL DEFAULT TRUE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_availability_lookup '
                    'ON doctor_availability(doctor_id, hospital_id, day_of_week, is_active)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_slot '
                    'ON appointments(doctor_id, hospital_id, appointment_date, appointment_time)'
                )
            )

        _create_active_booking_index()
        _appointment_schema_checked = True


def _create_active_booking_index() -> None:
    # Runs in its own transaction; legacy duplicates leave the rest of the schema usable.
    try:
        with engine.begin() as connection:
            connection.execute(text(ACTIVE_BOOKING_INDEX))
    except IntegrityError:
        with engine.connect() as connection:
            duplicates = connection.execute(text(DUPLICATE_ACTIVE_BOOKINGS)).all()
        logger.error(
            'Could not create uq_appointments_active_booking; duplicate active bookings '
            '(doctor_id, hospital_id, date, time, patient_id, count): %s',
            [tuple(row) for row in duplicates],
        )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        logger.exception('Database schema check failed. Check DATABASE_URL and Postgres credentials.')
        raise StorageError() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_errors(db: Session, action: str):
    """Roll back and re-raise SQLAlchemy failures as an opaque StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while %s.', action)
        raise StorageError() from exc

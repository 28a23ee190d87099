"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func

from hospital_api.database import Base

ROLE_ADMIN = 'admin'
ROLE_DOCTOR = 'doctor'
ROLE_PATIENT = 'patient'
USER_ROLES = (ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT)


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    phone = Column(String)
    role = Column(String, nullable=False, default=ROLE_PATIENT)  # admin/doctor/patient
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

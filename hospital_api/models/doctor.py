"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from hospital_api.database import Base
from hospital_api.models.hospital import Hospital
from hospital_api.models.user import User


class Doctor(Base):
    """Represents a doctor profile attached to a user account."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specialization = Column(String, nullable=False)
    license_number = Column(String, nullable=False)
    years_of_experience = Column(Integer, nullable=False, default=0)
    bio = Column(Text)
    consultation_fee = Column(Numeric(10, 2), nullable=False, default=0)
    image_url = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship(User, lazy="joined")
    hospitals = relationship("DoctorHospital", back_populates="doctor", cascade="all, delete-orphan")


class DoctorHospital(Base):
    """Links a doctor to a hospital they practise at."""
    __tablename__ = "doctor_hospitals"
    __table_args__ = (UniqueConstraint("doctor_id", "hospital_id", name="uq_doctor_hospital"),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())

    doctor = relationship("Doctor", back_populates="hospitals")
    hospital = relationship(Hospital, lazy="joined")

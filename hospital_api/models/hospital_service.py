"""Hospital service catalogue definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from hospital_api.database import Base


class HospitalService(Base):
    """A service (emergency care, radiology, ...) a hospital can offer."""
    __tablename__ = "hospital_services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    category = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class HospitalServiceAssignment(Base):
    """Links a catalogue service to a hospital offering it."""
    __tablename__ = "hospital_service_assignments"
    __table_args__ = (UniqueConstraint("hospital_id", "service_id", name="uq_hospital_service"),)

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(Integer, ForeignKey("hospital_services.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    service = relationship(HospitalService, lazy="joined")

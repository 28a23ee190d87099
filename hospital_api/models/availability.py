"""Availability model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, func

from hospital_api.database import Base


class Availability(Base):
    """A recurring weekly window in which a doctor takes appointments at a hospital."""
    __tablename__ = "doctor_availability"
    __table_args__ = (
        Index("idx_availability_lookup", "doctor_id", "hospital_id", "day_of_week", "is_active"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday .. 6 = Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    max_patients = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

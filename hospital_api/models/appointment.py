"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, func, text

from hospital_api.database import Base

STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)
# Statuses that occupy a seat in a slot.
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

_ACTIVE_WHERE = text("status IN ('pending', 'confirmed')")


class Appointment(Base):
    """Represents a patient's booking of a doctor's slot."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_slot", "doctor_id", "hospital_id", "appointment_date", "appointment_time"),
        Index(
            "uq_appointments_active_booking",
            "doctor_id",
            "hospital_id",
            "appointment_date",
            "appointment_time",
            "patient_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id", ondelete="CASCADE"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    status = Column(String, nullable=False, default=STATUS_PENDING)
    notes = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

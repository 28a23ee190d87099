"""Patient model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from hospital_api.database import Base
from hospital_api.models.user import User


class Patient(Base):
    """Represents the patient profile of a user."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    date_of_birth = Column(Date)
    gender = Column(String)  # male/female/other
    emergency_contact = Column(String)
    medical_history = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship(User, lazy="joined")

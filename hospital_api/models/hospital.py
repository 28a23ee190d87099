"""Hospital model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from hospital_api.database import Base


class Hospital(Base):
    """Represents a hospital where doctors hold appointments."""
    __tablename__ = "hospitals"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String)
    website = Column(String)
    description = Column(Text)
    image_url = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

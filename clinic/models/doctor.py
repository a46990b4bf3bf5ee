from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class DoctorProfile(Base):
    __tablename__ = "doctor_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # Professional information
    speciality = Column(String(100), nullable=False, default="General Physician")
    experience = Column(Integer, nullable=True)
    bio = Column(Text, nullable=True)

    # Billing information
    upi_id = Column(String(100), nullable=True)
    clinic_address = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor_profile")

    def __repr__(self):
        return f"<DoctorProfile(id={self.id}, user_id={self.user_id}, speciality='{self.speciality}')>"

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class PatientProfile(Base):
    __tablename__ = "patient_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    preferred_doctor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Personal information
    dob = Column(DateTime, nullable=True)
    gender = Column(String(20), nullable=True)
    blood_group = Column(String(10), nullable=True)

    # Contact information
    address = Column(String(255), nullable=True)
    emergency_contact = Column(String(50), nullable=True)

    # Booking precondition
    has_completed_medical_history = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="patient_profile", foreign_keys=[user_id])
    appointments = relationship("Appointment", back_populates="patient")
    medical_history = relationship("MedicalHistory", back_populates="patient", uselist=False)

    @property
    def name(self):
        return self.user.name if self.user else None

    @property
    def email(self):
        return self.user.email if self.user else None

    @property
    def phone(self):
        return self.user.phone if self.user else None

    def __repr__(self):
        return f"<PatientProfile(id={self.id}, user_id={self.user_id})>"

class MedicalHistory(Base):
    __tablename__ = "medical_history"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patient_profiles.id", ondelete="CASCADE"), unique=True, nullable=False)

    conditions = Column(JSON, default=list, nullable=False)
    allergies = Column(JSON, default=list, nullable=False)
    current_medications = Column(JSON, default=list, nullable=False)
    surgeries = Column(JSON, default=list, nullable=False)
    family_history = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("PatientProfile", back_populates="medical_history")

    def __repr__(self):
        return f"<MedicalHistory(id={self.id}, patient_id={self.patient_id})>"

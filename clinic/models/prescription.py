from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False)

    diagnosis = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    follow_up_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="prescription")
    medications = relationship("Medication", back_populates="prescription", cascade="all, delete-orphan")

    @property
    def doctor_name(self):
        doctor = self.appointment.doctor if self.appointment else None
        return doctor.name if doctor else None

    def __repr__(self):
        return f"<Prescription(id={self.id}, appointment_id={self.appointment_id})>"

class Medication(Base):
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False)

    medicine_name = Column(String(200), nullable=False)
    dosage = Column(String(100), nullable=False)
    frequency = Column(String(100), nullable=False)
    duration = Column(String(100), nullable=False)
    instructions = Column(Text, nullable=True)

    prescription = relationship("Prescription", back_populates="medications")

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Boolean, Text, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    RESCHEDULED = "RESCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DECLINED = "DECLINED"

class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

# Rows in these states no longer occupy their slot
RELEASED_STATUSES = (AppointmentStatus.CANCELLED,)

_occupying = text("status != 'CANCELLED'")
ACTIVE_SLOT_INDEX = "appointments_active_slot_idx"

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one occupying appointment per (day, label, seat)
        Index(
            ACTIVE_SLOT_INDEX,
            "slot_date", "appointment_time", "slot_seat",
            unique=True,
            sqlite_where=_occupying,
            postgresql_where=_occupying,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patient_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Appointment details
    appointment_date = Column(DateTime, nullable=False, index=True)
    slot_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)
    slot_seat = Column(Integer, nullable=False, default=1)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.PENDING)
    symptoms = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    # Billing
    payment_status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    bill_sent = Column(Boolean, nullable=False, default=False)
    bill_sent_at = Column(DateTime, nullable=True)
    prescription_sent = Column(Boolean, nullable=False, default=False)
    prescription_sent_at = Column(DateTime, nullable=True)

    # Approval tracking
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, nullable=True)

    # Decline tracking
    declined_at = Column(DateTime, nullable=True)
    declined_by = Column(Integer, nullable=True)
    decline_reason = Column(Text, nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    # Rescheduling tracking
    original_appointment_date = Column(DateTime, nullable=True)
    original_appointment_time = Column(String(5), nullable=True)
    rescheduled_at = Column(DateTime, nullable=True)
    rescheduled_by = Column(Integer, nullable=True)

    reminder_sent = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("PatientProfile", back_populates="appointments")
    doctor = relationship("User")
    payment = relationship("Payment", back_populates="appointment", uselist=False)
    prescription = relationship("Prescription", back_populates="appointment", uselist=False)

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, date='{self.slot_date}', time='{self.appointment_time}', status='{self.status}')>"

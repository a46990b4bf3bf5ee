from sqlalchemy import Column, Integer, ForeignKey, DateTime, Float, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from .appointment import PaymentStatus

class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI_MANUAL = "UPI_MANUAL"
    UPI_QR = "UPI_QR"
    ONLINE = "ONLINE"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False)

    amount = Column(Float, nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    paid_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="payment")

    def __repr__(self):
        return f"<Payment(id={self.id}, appointment_id={self.appointment_id}, amount={self.amount}, status='{self.status}')>"

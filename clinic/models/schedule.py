from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Date, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class DoctorSchedule(Base):
    """Working hours of one doctor on one calendar date."""

    __tablename__ = "doctor_schedule"
    __table_args__ = (
        UniqueConstraint("doctor_id", "schedule_date", name="doctor_schedule_doctor_date_idx"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    schedule_date = Column(Date, nullable=False, index=True)

    # HH:MM labels
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    break_start_time = Column(String(5), nullable=True)
    break_end_time = Column(String(5), nullable=True)

    slot_duration = Column(Integer, nullable=False)  # minutes
    max_patients_per_slot = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    doctor = relationship("User")

    def __repr__(self):
        return f"<DoctorSchedule(id={self.id}, doctor_id={self.doctor_id}, date='{self.schedule_date}')>"

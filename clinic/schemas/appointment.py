from datetime import datetime
from typing import List, Optional

from ..models.appointment import AppointmentStatus, PaymentStatus
from ..models.payment import PaymentMethod
from .base import CamelModel
from .payment import PaymentResponse
from .prescription import PrescriptionResponse


class AppointmentCreate(CamelModel):
    appointment_date: str
    appointment_time: str
    symptoms: str
    notes: Optional[str] = None
    doctor_id: Optional[int] = None


class ReasonRequest(CamelModel):
    reason: Optional[str] = None


class CompleteRequest(CamelModel):
    consultation_fee: Optional[float] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_paid: bool = False
    notes: Optional[str] = None


class RescheduleRequest(CamelModel):
    new_date: Optional[str] = None
    new_time: Optional[str] = None
    reason: Optional[str] = None


class PatientSummary(CamelModel):
    id: int
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class AppointmentResponse(CamelModel):
    id: int
    patient_id: int
    doctor_id: Optional[int] = None
    appointment_date: datetime
    appointment_time: str
    status: AppointmentStatus
    symptoms: str
    notes: Optional[str] = None
    payment_status: PaymentStatus
    bill_sent: bool = False
    prescription_sent: bool = False
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    declined_at: Optional[datetime] = None
    declined_by: Optional[int] = None
    decline_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    original_appointment_date: Optional[datetime] = None
    original_appointment_time: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[int] = None
    reminder_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppointmentDetail(AppointmentResponse):
    patient: Optional[PatientSummary] = None
    payment: Optional[PaymentResponse] = None
    prescription: Optional[PrescriptionResponse] = None


class AppointmentEnvelope(CamelModel):
    appointment: AppointmentDetail


class AppointmentList(CamelModel):
    appointments: List[AppointmentDetail]


class AppointmentActionResponse(CamelModel):
    success: bool = True
    message: str
    appointment: Optional[AppointmentResponse] = None
    payment: Optional[PaymentResponse] = None


class AvailableSlotsResponse(CamelModel):
    slots: List[str]
    message: Optional[str] = None
    closed_for_today: Optional[bool] = None


class ReminderRunResponse(CamelModel):
    success: bool = True
    current_time: str
    reminders_sent: int
    total_checked: int
    errors: Optional[List[str]] = None

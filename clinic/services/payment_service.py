import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.dates import clinic_now, format_display_date
from ..core.exceptions import NotFound, ValidationError
from ..models.appointment import Appointment, PaymentStatus
from ..models.patient import PatientProfile
from ..models.payment import Payment
from ..schemas.payment import PaymentCreate, PaymentUpdate
from .doctors import DoctorDirectory
from .notifications import NotificationDispatcher, Recipient
from .permissions import Action, authorize, is_staff

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(
        self,
        db: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        doctors: Optional[DoctorDirectory] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.doctors = doctors
        self.now = now or clinic_now

    def list_payments(self, user) -> List[Payment]:
        query = self.db.query(Payment).join(Appointment, Payment.appointment_id == Appointment.id)
        if not is_staff(user):
            profile = self.db.query(PatientProfile).filter(PatientProfile.user_id == user.id).first()
            if not profile:
                return []
            query = query.filter(Appointment.patient_id == profile.id)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def record_payment(self, user, data: PaymentCreate) -> Payment:
        """Record the payment of an appointment and mirror its status onto it."""
        authorize(Action.RECORD_PAYMENT, user)

        appointment = self.db.query(Appointment).filter(Appointment.id == data.appointment_id).first()
        if not appointment:
            raise NotFound("Appointment not found")

        now = self.now()
        status = PaymentStatus.PAID if data.is_paid else PaymentStatus.PENDING

        payment = appointment.payment
        if payment is None:
            payment = Payment(appointment_id=appointment.id)
            self.db.add(payment)
        payment.amount = data.amount
        payment.payment_method = data.payment_method
        payment.status = status
        payment.paid_at = now if data.is_paid else None
        payment.notes = data.notes

        appointment.payment_status = status
        appointment.bill_sent = True
        appointment.bill_sent_at = now

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(payment)

        logger.info(f"Payment {payment.id} of {payment.amount} recorded for appointment {appointment.id}")

        if self.dispatcher and not data.is_paid and appointment.patient and appointment.patient.user:
            doctor = self.doctors.get(appointment.doctor_id) if self.doctors else None
            self.dispatcher.send_billing_email(
                Recipient.from_user(appointment.patient.user),
                doctor,
                format_display_date(appointment.appointment_date),
                appointment.appointment_time,
                payment.amount,
            )
        return payment

    def update_status(self, user, data: PaymentUpdate) -> Payment:
        authorize(Action.RECORD_PAYMENT, user)

        payment = self.db.query(Payment).filter(Payment.id == data.payment_id).first()
        if not payment:
            raise NotFound("Payment not found")
        if payment.appointment is None:
            raise ValidationError("Payment is not linked to an appointment")

        payment.status = data.status
        payment.paid_at = self.now() if data.status == PaymentStatus.PAID else None
        payment.appointment.payment_status = data.status

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(payment)

        logger.info(f"Payment {payment.id} marked {data.status.value}")
        return payment

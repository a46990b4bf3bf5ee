"""Appointment booking and lifecycle transitions.

Each action validates its input and checks authorization before touching
the database. Side effects are handed to the dispatcher only after the
change is committed.
"""
import logging
import math
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.config import settings
from ..core.dates import clinic_now, format_display_date, parse_iso_date
from ..core.exceptions import NotFound, SlotConflict, ValidationError
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus, PaymentStatus
from ..models.patient import PatientProfile
from ..models.payment import Payment
from ..models.schedule import DoctorSchedule
from ..models.user import User
from ..schemas.appointment import AppointmentCreate, CompleteRequest, RescheduleRequest
from .booking import BookingConflictChecker, is_slot_collision
from .doctors import DoctorDirectory, DoctorInfo
from .notifications import NotificationDispatcher, Recipient
from .permissions import Action, authorize, is_staff, owns_appointment, role_of
from .schedule_service import ScheduleService
from .slots import generate_slots, is_valid_time_label

logger = logging.getLogger(__name__)

# action -> (allowed source states, target state)
TRANSITIONS: Dict[Action, Tuple[FrozenSet[AppointmentStatus], AppointmentStatus]] = {
    Action.APPROVE: (frozenset({AppointmentStatus.PENDING}), AppointmentStatus.SCHEDULED),
    Action.DECLINE: (frozenset({AppointmentStatus.PENDING}), AppointmentStatus.DECLINED),
    Action.CANCEL: (
        frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.RESCHEDULED}),
        AppointmentStatus.CANCELLED,
    ),
    Action.COMPLETE: (frozenset({AppointmentStatus.SCHEDULED}), AppointmentStatus.COMPLETED),
    Action.RESCHEDULE: (
        frozenset(set(AppointmentStatus) - {AppointmentStatus.CANCELLED}),
        AppointmentStatus.RESCHEDULED,
    ),
}

INVALID_STATE_MESSAGES = {
    Action.APPROVE: "Only pending appointments can be approved",
    Action.DECLINE: "Only pending appointments can be declined",
    Action.CANCEL: "Only scheduled or rescheduled appointments can be cancelled",
    Action.COMPLETE: "Only scheduled appointments can be completed",
    Action.RESCHEDULE: "Cannot reschedule a cancelled appointment",
}


def can_transition(action: Action, status: AppointmentStatus) -> bool:
    sources, _ = TRANSITIONS[action]
    return status in sources


def require_reason(reason: Optional[str], label: str) -> str:
    reason = (reason or "").strip()
    if len(reason) < settings.MIN_REASON_LENGTH:
        raise ValidationError(f"{label} reason must be at least {settings.MIN_REASON_LENGTH} characters")
    return reason


class AppointmentService:
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
        self.conflicts = BookingConflictChecker(db)
        self.schedules = ScheduleService(db, now=self.now)

    # Queries

    def _query(self):
        return self.db.query(Appointment).options(
            joinedload(Appointment.patient).joinedload(PatientProfile.user),
            joinedload(Appointment.payment),
            joinedload(Appointment.prescription),
        )

    def _patient_profile(self, user) -> Optional[PatientProfile]:
        return self.db.query(PatientProfile).filter(PatientProfile.user_id == user.id).first()

    def list_appointments(self, user) -> List[Appointment]:
        """Staff see every appointment, patients only their own."""
        query = self._query()
        if not is_staff(user):
            profile = self._patient_profile(user)
            if not profile:
                return []
            query = query.filter(Appointment.patient_id == profile.id)
        return query.order_by(Appointment.appointment_date.desc()).all()

    def get_appointment(self, user, appointment_id: int) -> Appointment:
        appointment = self._query().filter(Appointment.id == appointment_id).first()
        if not appointment or not (is_staff(user) or owns_appointment(user, appointment)):
            # Other patients' appointments are reported as missing
            raise NotFound("Appointment not found")
        return appointment

    def _get(self, appointment_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFound("Appointment not found")
        return appointment

    # Booking

    def _schedule_for(self, day, doctor_id: Optional[int] = None) -> Optional[DoctorSchedule]:
        """The doctor's schedule for ``day``, else any active schedule of that date."""
        schedule = None
        if doctor_id is not None:
            schedule = self.schedules.find_schedule(day, doctor_id)
        return schedule or self.schedules.find_schedule(day)

    def _require_offered(self, schedule: Optional[DoctorSchedule], time_label: str) -> None:
        if schedule is None:
            return
        offered = generate_slots(
            schedule.start_time,
            schedule.end_time,
            schedule.slot_duration,
            schedule.break_start_time,
            schedule.break_end_time,
        )
        if time_label not in offered:
            raise ValidationError("The selected time is not available on this date")

    def _is_doctor(self, user_id: int) -> bool:
        doctor = self.db.query(User).filter(User.id == user_id).first()
        return doctor is not None and role_of(doctor) == UserRole.DOCTOR

    def book(self, user, data: AppointmentCreate) -> Appointment:
        authorize(Action.BOOK, user)

        profile = self._patient_profile(user)
        if not profile:
            raise NotFound("Patient profile not found")
        if not profile.has_completed_medical_history:
            raise ValidationError("Please complete your medical history first")

        if not is_valid_time_label(data.appointment_time):
            raise ValidationError("Appointment time must be in HH:MM format")
        symptoms = (data.symptoms or "").strip()
        if len(symptoms) < settings.MIN_SYMPTOMS_LENGTH:
            raise ValidationError(f"Symptoms must be at least {settings.MIN_SYMPTOMS_LENGTH} characters")

        try:
            appointment_date = parse_iso_date(data.appointment_date)
        except ValueError:
            raise ValidationError("Invalid appointment date")
        day = appointment_date.date()
        slot_start = datetime.combine(day, datetime.strptime(data.appointment_time, "%H:%M").time())
        if slot_start <= self.now():
            raise ValidationError("Cannot book an appointment in the past")

        if data.doctor_id is not None and not self._is_doctor(data.doctor_id):
            raise ValidationError("Selected doctor not found")

        schedule = self._schedule_for(day, data.doctor_id)
        self._require_offered(schedule, data.appointment_time)
        capacity = schedule.max_patients_per_slot if schedule else 1
        doctor_id = data.doctor_id or (schedule.doctor_id if schedule else None)

        seat = self.conflicts.claim_seat(day, data.appointment_time, capacity)

        appointment = Appointment(
            patient_id=profile.id,
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            slot_date=day,
            appointment_time=data.appointment_time,
            slot_seat=seat,
            status=AppointmentStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            symptoms=symptoms,
            notes=data.notes,
        )
        self.db.add(appointment)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not is_slot_collision(e):
                raise
            logger.warning(f"Lost booking race for {day} {data.appointment_time}")
            raise SlotConflict()
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} booked by user {user.id} for {day} {data.appointment_time}")

        if self.dispatcher:
            patient = Recipient.from_user(user)
            display_date = format_display_date(day)
            doctor = self._doctor(doctor_id)
            self.dispatcher.notify_patient_appointment_pending(patient, display_date, appointment.appointment_time)
            self.dispatcher.notify_doctor_approval_needed(
                patient, display_date, appointment.appointment_time, symptoms, doctor
            )
            self.dispatcher.trigger_new_appointment(appointment)

        return appointment

    # Transitions

    def _load_for(self, action: Action, user, appointment_id: int) -> Appointment:
        appointment = self._get(appointment_id)
        authorize(action, user, appointment)
        if not can_transition(action, appointment.status):
            raise ValidationError(INVALID_STATE_MESSAGES[action])
        return appointment

    def _commit(self, appointment: Appointment) -> Appointment:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(appointment)
        return appointment

    def _doctor(self, doctor_id: Optional[int]) -> Optional[DoctorInfo]:
        if self.doctors is None:
            return None
        return self.doctors.get(doctor_id)

    def _assign_doctor(self, appointment: Appointment, user) -> None:
        # Admins act on behalf of the clinic and never become the treating doctor
        if appointment.doctor_id is None and role_of(user) == UserRole.DOCTOR:
            appointment.doctor_id = user.id

    def _patient(self, appointment: Appointment) -> Optional[Recipient]:
        profile = appointment.patient
        if profile is None or profile.user is None:
            return None
        return Recipient.from_user(profile.user)

    def approve(self, user, appointment_id: int) -> Appointment:
        authorize(Action.APPROVE, user)
        appointment = self._load_for(Action.APPROVE, user, appointment_id)

        appointment.status = TRANSITIONS[Action.APPROVE][1]
        appointment.approved_at = self.now()
        appointment.approved_by = user.id
        self._assign_doctor(appointment, user)
        self._commit(appointment)

        logger.info(f"Appointment {appointment.id} approved by user {user.id}")

        if self.dispatcher:
            patient = self._patient(appointment)
            if patient:
                self.dispatcher.notify_patient_appointment_approved(
                    patient,
                    format_display_date(appointment.appointment_date),
                    appointment.appointment_time,
                    self._doctor(appointment.doctor_id),
                )
            self.dispatcher.trigger_appointment_update(appointment)
        return appointment

    def decline(self, user, appointment_id: int, reason: Optional[str]) -> Appointment:
        authorize(Action.DECLINE, user)
        reason = require_reason(reason, "Decline")
        appointment = self._load_for(Action.DECLINE, user, appointment_id)

        appointment.status = TRANSITIONS[Action.DECLINE][1]
        appointment.declined_at = self.now()
        appointment.declined_by = user.id
        appointment.decline_reason = reason
        self._commit(appointment)

        logger.info(f"Appointment {appointment.id} declined by user {user.id}")

        if self.dispatcher:
            patient = self._patient(appointment)
            if patient:
                self.dispatcher.notify_patient_appointment_declined(
                    patient,
                    format_display_date(appointment.appointment_date),
                    appointment.appointment_time,
                    reason,
                    self._doctor(appointment.doctor_id),
                )
            self.dispatcher.trigger_appointment_update(appointment)
        return appointment

    def cancel(self, user, appointment_id: int, reason: Optional[str]) -> Appointment:
        reason = require_reason(reason, "Cancellation")
        appointment = self._get(appointment_id)
        authorize(Action.CANCEL, user, appointment)
        if not can_transition(Action.CANCEL, appointment.status):
            raise ValidationError(INVALID_STATE_MESSAGES[Action.CANCEL])

        appointment.status = TRANSITIONS[Action.CANCEL][1]
        appointment.cancellation_reason = reason
        appointment.cancelled_at = self.now()
        appointment.cancelled_by = user.id
        self._commit(appointment)

        logger.info(f"Appointment {appointment.id} cancelled by user {user.id}")

        if self.dispatcher:
            patient = self._patient(appointment)
            display_date = format_display_date(appointment.appointment_date)
            doctor = self._doctor(appointment.doctor_id)
            if is_staff(user):
                if patient:
                    self.dispatcher.notify_patient_appointment_status_change(
                        patient, AppointmentStatus.CANCELLED.value, display_date,
                        appointment.appointment_time, doctor,
                    )
            elif patient:
                self.dispatcher.notify_doctor_cancelled_by_patient(
                    patient, display_date, appointment.appointment_time, reason, doctor
                )
            self.dispatcher.trigger_appointment_update(appointment)
        return appointment

    def complete(self, user, appointment_id: int, data: CompleteRequest) -> Tuple[Appointment, Payment]:
        """Mark a visit completed and record its payment in one commit."""
        authorize(Action.COMPLETE, user)
        fee = data.consultation_fee
        if fee is None or not math.isfinite(fee) or fee <= 0:
            raise ValidationError("Valid consultation fee is required")
        appointment = self._load_for(Action.COMPLETE, user, appointment_id)

        now = self.now()
        payment_status = PaymentStatus.PAID if data.is_paid else PaymentStatus.PENDING

        payment = appointment.payment
        if payment is None:
            payment = Payment(appointment_id=appointment.id)
            self.db.add(payment)
        payment.amount = fee
        payment.payment_method = data.payment_method
        payment.status = payment_status
        payment.paid_at = now if data.is_paid else None
        payment.notes = data.notes

        appointment.status = TRANSITIONS[Action.COMPLETE][1]
        appointment.payment_status = payment_status
        appointment.bill_sent = True
        appointment.bill_sent_at = now
        self._assign_doctor(appointment, user)

        self._commit(appointment)
        self.db.refresh(payment)

        logger.info(f"Appointment {appointment.id} completed by user {user.id}, fee {fee}")

        if self.dispatcher:
            patient = self._patient(appointment)
            display_date = format_display_date(appointment.appointment_date)
            doctor = self._doctor(appointment.doctor_id)
            if patient:
                self.dispatcher.notify_patient_appointment_status_change(
                    patient, AppointmentStatus.COMPLETED.value, display_date,
                    appointment.appointment_time, doctor,
                )
                if not data.is_paid:
                    self.dispatcher.send_billing_email(
                        patient, doctor, display_date, appointment.appointment_time, fee
                    )
            self.dispatcher.trigger_appointment_update(appointment)
        return appointment, payment

    def reschedule(self, user, appointment_id: int, data: RescheduleRequest) -> Appointment:
        authorize(Action.RESCHEDULE, user)
        if not data.new_date or not data.new_time:
            raise ValidationError("New date and time are required")
        if not is_valid_time_label(data.new_time):
            raise ValidationError("New time must be in HH:MM format")
        try:
            new_date = parse_iso_date(data.new_date)
        except ValueError:
            raise ValidationError("Invalid new date")

        day = new_date.date()
        slot_start = datetime.combine(day, datetime.strptime(data.new_time, "%H:%M").time())
        if slot_start <= self.now():
            raise ValidationError("Cannot reschedule to a past date")

        appointment = self._load_for(Action.RESCHEDULE, user, appointment_id)

        schedule = self._schedule_for(day, appointment.doctor_id)
        self._require_offered(schedule, data.new_time)
        capacity = schedule.max_patients_per_slot if schedule else 1

        try:
            seat = self.conflicts.claim_seat(day, data.new_time, capacity, exclude_id=appointment.id)
        except SlotConflict:
            raise SlotConflict("The selected time slot is already booked")

        # First reschedule only; later moves keep the original slot on record
        if appointment.original_appointment_date is None:
            appointment.original_appointment_date = appointment.appointment_date
            appointment.original_appointment_time = appointment.appointment_time

        appointment.appointment_date = new_date
        appointment.slot_date = day
        appointment.appointment_time = data.new_time
        appointment.slot_seat = seat
        appointment.status = TRANSITIONS[Action.RESCHEDULE][1]
        appointment.rescheduled_at = self.now()
        appointment.rescheduled_by = user.id
        reason = (data.reason or "").strip()
        if reason:
            appointment.notes = f"{appointment.notes or ''}\nReschedule reason: {reason}".strip()

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if not is_slot_collision(e):
                raise
            logger.warning(f"Lost reschedule race for {day} {data.new_time}")
            raise SlotConflict("The selected time slot is already booked")
        self.db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} rescheduled to {day} {data.new_time} by user {user.id}")

        if self.dispatcher:
            patient = self._patient(appointment)
            if patient:
                self.dispatcher.notify_patient_appointment_status_change(
                    patient, AppointmentStatus.RESCHEDULED.value, format_display_date(day),
                    appointment.appointment_time, self._doctor(appointment.doctor_id),
                )
            self.dispatcher.trigger_appointment_update(appointment)
        return appointment

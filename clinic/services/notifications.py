"""Fire-and-forget side effects of appointment changes.

Every notification is queued on the request's ``BackgroundTasks`` and runs
after the response is sent, once the state change is committed. Each
delivery is retried independently; a delivery that keeps failing is logged
and dropped, never raised back into a request.
"""
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from starlette.concurrency import run_in_threadpool
from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_exponential

from ..core.config import settings
from . import mailer as templates
from .doctors import DoctorInfo
from .mailer import send_email
from .realtime import RealtimeClient

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    user_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Recipient":
        return cls(user_id=user.id, name=user.name, email=user.email, phone=user.phone)


def appointment_event(appointment) -> Dict[str, Any]:
    """Payload of appointment real-time events."""
    return {
        "id": appointment.id,
        "status": appointment.status.value,
        "patientId": appointment.patient_id,
    }


async def deliver(label: str, func: Callable, *args, **kwargs) -> bool:
    """Run one side effect with retries. Never raises."""
    attempts = max(1, settings.NOTIFICATION_MAX_ATTEMPTS)
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=settings.NOTIFICATION_RETRY_WAIT_SECONDS, max=30),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                if inspect.iscoroutinefunction(func):
                    await func(*args, **kwargs)
                else:
                    await run_in_threadpool(func, *args, **kwargs)
        return True
    except Exception as exc:
        logger.error(f"Giving up on {label} after {attempts} attempt(s): {exc}")
        return False


class NotificationDispatcher:
    def __init__(
        self,
        background_tasks: BackgroundTasks,
        mailer: Callable[[str, str, str], bool] = None,
        realtime: RealtimeClient = None,
    ):
        self.background_tasks = background_tasks
        self.mailer = mailer or send_email
        self.realtime = realtime or RealtimeClient()

    def submit(self, label: str, func: Callable, *args, **kwargs) -> None:
        self.background_tasks.add_task(deliver, label, func, *args, **kwargs)

    def _email(self, label: str, to_email: Optional[str], message) -> None:
        if not to_email:
            return
        subject, html = message
        self.submit(label, self.mailer, to_email, subject, html)

    def _in_app(self, label: str, user_id: int, title: str, message: str, kind: str) -> None:
        self.submit(label, self.realtime.trigger_notification, user_id, title, message, kind)

    # Real-time appointment events

    def trigger_new_appointment(self, appointment) -> None:
        self.submit("new appointment event", self.realtime.trigger_new_appointment, appointment_event(appointment))

    def trigger_appointment_update(self, appointment) -> None:
        self.submit("appointment update event", self.realtime.trigger_appointment_update, appointment_event(appointment))

    # Patient notifications

    def notify_patient_appointment_pending(self, patient: Recipient, date: str, time: str) -> None:
        # In-app only; the patient is emailed once the doctor decides
        self._in_app(
            "pending notification", patient.user_id,
            "Appointment Request Submitted",
            f"Your appointment request for {date} at {time} is awaiting the doctor's approval.",
            "APPOINTMENT_CONFIRMATION",
        )

    def notify_patient_appointment_approved(self, patient: Recipient, date: str, time: str,
                                            doctor: Optional[DoctorInfo]) -> None:
        doctor_name = doctor.name if doctor else "Doctor"
        self._in_app(
            "approval notification", patient.user_id,
            "Appointment Approved",
            f"Your appointment on {date} at {time} has been approved.",
            "APPOINTMENT_CONFIRMATION",
        )
        self._email(
            "approval email", patient.email,
            templates.appointment_approved(patient.name, date, time, doctor_name,
                                           doctor.clinic_address if doctor else None),
        )

    def notify_patient_appointment_declined(self, patient: Recipient, date: str, time: str, reason: str,
                                            doctor: Optional[DoctorInfo] = None) -> None:
        self._in_app(
            "decline notification", patient.user_id,
            "Appointment Declined",
            f"Your appointment request for {date} at {time} was declined: {reason}",
            "APPOINTMENT_CONFIRMATION",
        )
        self._email(
            "decline email", patient.email,
            templates.appointment_declined(patient.name, date, time, reason,
                                           doctor.clinic_address if doctor else None),
        )

    def notify_patient_appointment_status_change(self, patient: Recipient, status: str, date: str, time: str,
                                                 doctor: Optional[DoctorInfo] = None) -> None:
        if status == "COMPLETED":
            title, message = "Appointment Completed", f"Your appointment on {date} has been completed."
        elif status == "CANCELLED":
            title, message = "Appointment Cancelled", f"Your appointment on {date} at {time} has been cancelled."
        elif status == "RESCHEDULED":
            title = "Appointment Rescheduled"
            message = (f"Your appointment has been rescheduled to {date} at {time}. "
                       "Please check your dashboard for details.")
        else:
            title, message = "Appointment Update", f"Your appointment status has been updated to {status}."

        self._in_app(f"{status.lower()} notification", patient.user_id, title, message, "APPOINTMENT_CONFIRMATION")
        self._email(
            f"{status.lower()} email", patient.email,
            templates.appointment_status(patient.name, status, date, time,
                                         doctor.clinic_address if doctor else None),
        )

    def send_billing_email(self, patient: Recipient, doctor: Optional[DoctorInfo], date: str, time: str,
                           amount: float) -> None:
        self._email(
            "billing email", patient.email,
            templates.billing(
                patient.name, doctor.name if doctor else "Doctor", date, time, amount,
                upi_id=doctor.upi_id if doctor else None,
                clinic_address=doctor.clinic_address if doctor else None,
            ),
        )

    def send_appointment_reminder(self, patient: Recipient, date: str, time: str,
                                  doctor: Optional[DoctorInfo]) -> None:
        self._in_app(
            "reminder notification", patient.user_id,
            "Appointment Reminder",
            f"Your appointment is today at {time}.",
            "APPOINTMENT_REMINDER",
        )
        self._email(
            "reminder email", patient.email,
            templates.appointment_reminder(patient.name, date, time, doctor.name if doctor else "Doctor",
                                           doctor.clinic_address if doctor else None),
        )

    # Doctor notifications

    def notify_doctor_approval_needed(self, patient: Recipient, date: str, time: str, symptoms: str,
                                      doctor: Optional[DoctorInfo]) -> None:
        if doctor is None:
            logger.warning("No doctor on record to notify about a new appointment request")
            return
        self._in_app(
            "approval request notification", doctor.id,
            "New Appointment Request",
            f"{patient.name} requested an appointment on {date} at {time}.",
            "GENERAL",
        )
        self._email(
            "approval request email", doctor.email,
            templates.appointment_approval_request(patient.name, patient.phone or "Not provided", date, time,
                                                   symptoms, doctor.clinic_address),
        )

    def notify_doctor_cancelled_by_patient(self, patient: Recipient, date: str, time: str, reason: str,
                                           doctor: Optional[DoctorInfo]) -> None:
        if doctor is None:
            logger.warning("No doctor on record to notify about a patient cancellation")
            return
        self._in_app(
            "patient cancellation notification", doctor.id,
            "Appointment Cancelled",
            f"{patient.name} cancelled the appointment on {date} at {time}.",
            "GENERAL",
        )
        self._email(
            "patient cancellation email", doctor.email,
            templates.appointment_cancelled_by_patient(patient.name, date, time, reason),
        )

"""Same-day appointment reminders.

Meant to be called every 15 minutes by an external scheduler; the send
window is wide enough that every appointment falls into one run.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.dates import clinic_now, day_bounds, format_display_date
from ..models.appointment import Appointment, AppointmentStatus
from .doctors import DoctorDirectory
from .notifications import NotificationDispatcher, Recipient
from .slots import parse_time_label

logger = logging.getLogger(__name__)


class ReminderService:
    def __init__(
        self,
        db: Session,
        dispatcher: NotificationDispatcher,
        doctors: Optional[DoctorDirectory] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.doctors = doctors
        self.now = now or clinic_now

    def send_due_reminders(self) -> Dict:
        now = self.now()
        start, end = day_bounds(now.date())
        now_minutes = now.hour * 60 + now.minute

        candidates = self.db.query(Appointment).filter(
            Appointment.status == AppointmentStatus.SCHEDULED,
            Appointment.reminder_sent == False,  # noqa: E712
            Appointment.appointment_date >= start,
            Appointment.appointment_date < end,
        ).all()

        logger.info(f"Reminder run at {now:%Y-%m-%d %H:%M}: {len(candidates)} appointment(s) to check")

        sent = 0
        skipped = []
        for appointment in candidates:
            minutes_away = parse_time_label(appointment.appointment_time) - now_minutes
            if not settings.REMINDER_WINDOW_START_MINUTES <= minutes_away <= settings.REMINDER_WINDOW_END_MINUTES:
                continue

            profile = appointment.patient
            if profile is None or profile.user is None or not profile.user.email:
                skipped.append(f"No email for appointment {appointment.id}")
                continue

            doctor = self.doctors.get(appointment.doctor_id) if self.doctors else None
            self.dispatcher.send_appointment_reminder(
                Recipient.from_user(profile.user),
                format_display_date(appointment.appointment_date),
                appointment.appointment_time,
                doctor,
            )
            appointment.reminder_sent = True
            sent += 1

        self.db.commit()
        logger.info(f"Queued {sent} reminder(s)")

        result = {
            "success": True,
            "current_time": f"{now:%Y-%m-%d %H:%M}",
            "reminders_sent": sent,
            "total_checked": len(candidates),
        }
        if skipped:
            result["errors"] = skipped
        return result

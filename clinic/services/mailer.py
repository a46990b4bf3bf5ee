import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from ..core.config import settings
from ..core.dates import format_display_time

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, html: str) -> bool:
    """Send an HTML email over SMTP.

    Returns False when SMTP is not configured. Delivery errors propagate so
    the caller's retry policy can handle them.
    """
    if not settings.SMTP_HOST:
        logger.info(f"SMTP not configured, skipping email '{subject}' to {to_email}")
        return False

    msg = MIMEMultipart("alternative")
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(html, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        server.starttls()
        if settings.SMTP_USER:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
        server.sendmail(settings.EMAIL_FROM, [to_email], msg.as_string())

    logger.info(f"Email '{subject}' sent to {to_email}")
    return True


# Templates

def _layout(title: str, body: str, clinic_address: Optional[str] = None) -> str:
    footer = f"<p>{escape(settings.CLINIC_NAME)}"
    if clinic_address:
        footer += f"<br>{escape(clinic_address)}"
    footer += "</p>"
    return (
        "<html><body style=\"font-family: Arial, sans-serif\">"
        f"<h2>{escape(title)}</h2>{body}<hr>{footer}"
        "</body></html>"
    )


def _when(date: str, time: str) -> str:
    return f"<strong>{escape(date)}</strong> at <strong>{escape(format_display_time(time))}</strong>"


def appointment_approval_request(patient_name: str, patient_phone: str, date: str, time: str,
                                 symptoms: str, clinic_address: Optional[str] = None):
    subject = f"New appointment request from {patient_name}"
    body = (
        f"<p>{escape(patient_name)} ({escape(patient_phone)}) requested an appointment on {_when(date, time)}.</p>"
        f"<p>Symptoms: {escape(symptoms)}</p>"
        "<p>Please approve or decline the request from your dashboard.</p>"
    )
    return subject, _layout("Approval needed", body, clinic_address)


def appointment_approved(patient_name: str, date: str, time: str, doctor_name: str,
                         clinic_address: Optional[str] = None):
    subject = "Your appointment has been confirmed"
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>Your appointment with {escape(doctor_name)} on {_when(date, time)} has been approved.</p>"
    )
    return subject, _layout("Appointment confirmed", body, clinic_address)


def appointment_declined(patient_name: str, date: str, time: str, reason: str,
                         clinic_address: Optional[str] = None):
    subject = "Your appointment request was declined"
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>Your appointment request for {_when(date, time)} could not be accepted.</p>"
        f"<p>Reason: {escape(reason)}</p>"
        "<p>Please book another available slot.</p>"
    )
    return subject, _layout("Appointment declined", body, clinic_address)


def appointment_status(patient_name: str, status: str, date: str, time: str,
                       clinic_address: Optional[str] = None):
    titles = {
        "CANCELLED": "Appointment cancelled",
        "RESCHEDULED": "Appointment rescheduled",
        "COMPLETED": "Appointment completed",
    }
    title = titles.get(status, "Appointment update")
    if status == "RESCHEDULED":
        detail = f"Your appointment has been rescheduled to {_when(date, time)}."
    elif status == "CANCELLED":
        detail = f"Your appointment on {_when(date, time)} has been cancelled."
    elif status == "COMPLETED":
        detail = f"Thank you for visiting us on <strong>{escape(date)}</strong>."
    else:
        detail = f"Your appointment status has been updated to {escape(status)}."
    body = f"<p>Dear {escape(patient_name)},</p><p>{detail}</p>"
    return title, _layout(title, body, clinic_address)


def appointment_cancelled_by_patient(patient_name: str, date: str, time: str, reason: str):
    subject = f"{patient_name} cancelled an appointment"
    body = (
        f"<p>{escape(patient_name)} cancelled the appointment on {_when(date, time)}.</p>"
        f"<p>Reason: {escape(reason)}</p>"
    )
    return subject, _layout("Appointment cancelled", body)


def billing(patient_name: str, doctor_name: str, date: str, time: str, amount: float,
            upi_id: Optional[str] = None, clinic_address: Optional[str] = None):
    subject = f"Bill for your consultation on {date}"
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>Consultation with {escape(doctor_name)} on {_when(date, time)}.</p>"
        f"<p>Amount due: <strong>{amount:.2f}</strong></p>"
    )
    if upi_id:
        body += f"<p>Pay via UPI: <strong>{escape(upi_id)}</strong></p>"
    return subject, _layout("Consultation bill", body, clinic_address)


def appointment_reminder(patient_name: str, date: str, time: str, doctor_name: str,
                         clinic_address: Optional[str] = None):
    subject = f"Reminder: appointment today at {format_display_time(time)}"
    body = (
        f"<p>Dear {escape(patient_name)},</p>"
        f"<p>This is a reminder of your appointment with {escape(doctor_name)} on {_when(date, time)}.</p>"
    )
    return subject, _layout("Appointment reminder", body, clinic_address)

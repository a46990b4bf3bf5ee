"""Role checks, one per action.

Roles are always compared as ``UserRole`` members; the enum normalizes
whatever casing a token or legacy client sends.
"""
from enum import Enum
from typing import Optional

from ..core.exceptions import Forbidden
from ..core.security import UserRole


class Action(str, Enum):
    BOOK = "book"
    APPROVE = "approve"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"
    RESCHEDULE = "reschedule"
    MANAGE_SCHEDULE = "manage_schedule"
    RECORD_PAYMENT = "record_payment"
    WRITE_PRESCRIPTION = "write_prescription"


def role_of(user) -> UserRole:
    return UserRole(user.role)


def is_staff(user) -> bool:
    return role_of(user).is_staff


def owns_appointment(user, appointment) -> bool:
    patient = appointment.patient
    return patient is not None and patient.user_id == user.id


def can_book(user, appointment=None) -> bool:
    return role_of(user) == UserRole.PATIENT


def can_approve(user, appointment=None) -> bool:
    return is_staff(user)


def can_decline(user, appointment=None) -> bool:
    return is_staff(user)


def can_cancel(user, appointment=None) -> bool:
    return is_staff(user) or (appointment is not None and owns_appointment(user, appointment))


def can_complete(user, appointment=None) -> bool:
    return is_staff(user)


def can_reschedule(user, appointment=None) -> bool:
    return is_staff(user)


def can_manage_schedule(user, schedule=None) -> bool:
    if not is_staff(user):
        return False
    if role_of(user) == UserRole.ADMIN or schedule is None:
        return True
    # Unassigned schedules may be claimed by any doctor
    return schedule.doctor_id is None or schedule.doctor_id == user.id


def can_record_payment(user, appointment=None) -> bool:
    return is_staff(user)


def can_write_prescription(user, appointment=None) -> bool:
    return is_staff(user)


_RULES = {
    Action.BOOK: (can_book, "Doctors cannot book appointments"),
    Action.APPROVE: (can_approve, "Only doctors can approve appointments"),
    Action.DECLINE: (can_decline, "Only doctors can decline appointments"),
    Action.CANCEL: (can_cancel, "You are not authorized to cancel this appointment"),
    Action.COMPLETE: (can_complete, "Only doctors can complete appointments"),
    Action.RESCHEDULE: (can_reschedule, "Only doctors can reschedule appointments"),
    Action.MANAGE_SCHEDULE: (can_manage_schedule, "You can only manage your own schedules"),
    Action.RECORD_PAYMENT: (can_record_payment, "Only doctors can record payments"),
    Action.WRITE_PRESCRIPTION: (can_write_prescription, "Only doctors can write prescriptions"),
}


def authorize(action: Action, user, resource: Optional[object] = None) -> None:
    """Raise ``Forbidden`` unless ``user`` may perform ``action`` on ``resource``."""
    check, message = _RULES[action]
    if not check(user, resource):
        raise Forbidden(message)

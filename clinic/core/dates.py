"""Clinic-local date and time helpers.

All datetimes persisted by the service are naive and expressed in the
clinic's configured timezone, so "today" and "now" are always evaluated
against ``settings.CLINIC_TIMEZONE``.
"""
from datetime import date, datetime, time, timedelta
from typing import Tuple, Union
from zoneinfo import ZoneInfo

from .config import settings


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(settings.CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    """Current naive datetime in the clinic timezone."""
    return datetime.now(clinic_tz()).replace(tzinfo=None)


def clinic_today() -> date:
    return clinic_now().date()


def to_clinic_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive clinic-local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(clinic_tz()).replace(tzinfo=None)


def parse_iso_date(value: Union[str, date, datetime]) -> datetime:
    """Parse ``YYYY-MM-DD`` or a full ISO timestamp into a naive clinic-local datetime."""
    if isinstance(value, datetime):
        return to_clinic_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)

    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}")
    return to_clinic_naive(parsed)


def parse_day(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date: {value!r}, expected YYYY-MM-DD")


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open ``[start, end)`` datetime range covering one calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def format_display_date(value: Union[date, datetime]) -> str:
    """``January 24, 2026`` style used in notifications."""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def format_display_time(label: str) -> str:
    """``09:00`` -> ``9:00 AM``."""
    hours, minutes = (int(part) for part in label.split(":"))
    period = "PM" if hours >= 12 else "AM"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{minutes:02d} {period}"

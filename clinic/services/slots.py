"""Time slot generation for a doctor's working day.

Slots are ``HH:MM`` labels starting at the schedule's start time and
stepping by the slot duration. A label is emitted only when it is strictly
before the end time, so a duration that does not divide the working window
never produces a ragged final slot. Labels inside ``[break_start, break_end)``
are skipped.
"""
import re
from datetime import date, datetime
from typing import Iterable, List, Optional

MINUTES_PER_DAY = 24 * 60

_LABEL_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_time_label(label: str) -> int:
    """Return the minute offset from midnight of an ``HH:MM`` label."""
    match = _LABEL_RE.match(label or "")
    if not match:
        raise ValueError(f"Invalid time {label!r}, expected HH:MM (24-hour)")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time_label(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minute offset {minutes} is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time_label(label: str) -> bool:
    return bool(_LABEL_RE.match(label or ""))


def generate_slots(
    start_time: str,
    end_time: str,
    slot_duration: int,
    break_start: Optional[str] = None,
    break_end: Optional[str] = None,
) -> List[str]:
    """Candidate slot labels for one working window.

    The break window only applies when both ends are given.
    """
    if slot_duration is None or slot_duration <= 0:
        raise ValueError("Slot duration must be a positive number of minutes")

    current = parse_time_label(start_time)
    end = parse_time_label(end_time)

    break_window = None
    if break_start and break_end:
        break_window = (parse_time_label(break_start), parse_time_label(break_end))

    slots = []
    while current < end:
        in_break = break_window is not None and break_window[0] <= current < break_window[1]
        if not in_break:
            slots.append(format_time_label(current))
        current += slot_duration
    return slots


def filter_future_slots(slots: Iterable[str], target_date: date, now: datetime) -> List[str]:
    """Drop labels that are not strictly after ``now`` when ``target_date`` is today."""
    if target_date != now.date():
        return list(slots)
    now_minutes = now.hour * 60 + now.minute
    return [label for label in slots if parse_time_label(label) > now_minutes]


def slots_for_schedule(schedule, target_date: date, now: datetime) -> List[str]:
    """All bookable labels of ``schedule`` on ``target_date``, ignoring occupancy."""
    slots = generate_slots(
        schedule.start_time,
        schedule.end_time,
        schedule.slot_duration,
        schedule.break_start_time,
        schedule.break_end_time,
    )
    return filter_future_slots(slots, target_date, now)

"""Booking conflict checks against the appointments table.

Appointments are matched to a day by range on ``appointment_date`` since
stored timestamps may carry a time-of-day component. Every status except
CANCELLED keeps its slot occupied.
"""
from collections import Counter
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.dates import day_bounds
from ..core.exceptions import SlotConflict
from ..models.appointment import ACTIVE_SLOT_INDEX, Appointment, RELEASED_STATUSES


def is_slot_collision(error: IntegrityError) -> bool:
    """Whether ``error`` was raised by the occupied-slot unique index."""
    message = str(error.orig)
    # PostgreSQL names the index, SQLite lists its columns
    return ACTIVE_SLOT_INDEX in message or "appointments.slot_seat" in message


class BookingConflictChecker:
    def __init__(self, db: Session):
        self.db = db

    def _occupying(self, day: date):
        start, end = day_bounds(day)
        return self.db.query(Appointment).filter(
            Appointment.appointment_date >= start,
            Appointment.appointment_date < end,
            Appointment.status.notin_(RELEASED_STATUSES),
        )

    def find_conflicts(self, day: date, time: str, exclude_id: Optional[int] = None) -> List[Appointment]:
        """Occupying appointments at ``time`` on ``day``, other than ``exclude_id``."""
        query = self._occupying(day).filter(Appointment.appointment_time == time)
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.all()

    def occupancy(self, day: date) -> Counter:
        """Number of occupying appointments per time label on ``day``."""
        rows = self._occupying(day).with_entities(Appointment.appointment_time).all()
        return Counter(row[0] for row in rows)

    def claim_seat(self, day: date, time: str, capacity: int, exclude_id: Optional[int] = None) -> int:
        """Lowest free seat number of the slot, or ``SlotConflict`` when full.

        The seat feeds the partial unique index on appointments, so a
        concurrent booking that slips past this check still fails on insert.
        """
        capacity = max(1, capacity or 1)
        conflicts = self.find_conflicts(day, time, exclude_id)
        if len(conflicts) >= capacity:
            raise SlotConflict()

        taken = {appointment.slot_seat for appointment in conflicts}
        for seat in range(1, capacity + 1):
            if seat not in taken:
                return seat
        raise SlotConflict()

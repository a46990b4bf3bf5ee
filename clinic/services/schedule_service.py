import logging
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.dates import clinic_now, parse_day
from ..core.exceptions import Forbidden, NotFound, ValidationError
from ..core.security import UserRole
from ..models.schedule import DoctorSchedule
from ..schemas.schedule import ScheduleUpsert
from .booking import BookingConflictChecker
from .permissions import Action, authorize, role_of
from .slots import parse_time_label, slots_for_schedule

logger = logging.getLogger(__name__)

NO_SCHEDULE_MESSAGE = "Doctor has not set any appointments for this date. Please select another date."
CLOSED_FOR_TODAY_MESSAGE = "Doctor has closed for today. Please book for the next available date."
PAST_DATE_MESSAGE = "This date has already passed. Please select another date."


class ScheduleService:
    def __init__(self, db: Session, now: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.now = now or clinic_now

    def list_schedules(self, user) -> List[DoctorSchedule]:
        """Active schedules from today on; doctors only see their own."""
        query = self.db.query(DoctorSchedule).filter(
            DoctorSchedule.schedule_date >= self.now().date(),
            DoctorSchedule.is_active == True,  # noqa: E712
        )
        if role_of(user) == UserRole.DOCTOR:
            query = query.filter(DoctorSchedule.doctor_id == user.id)
        return query.order_by(DoctorSchedule.schedule_date).all()

    def find_schedule(self, day: date, doctor_id: Optional[int] = None) -> Optional[DoctorSchedule]:
        query = self.db.query(DoctorSchedule).filter(
            DoctorSchedule.schedule_date == day,
            DoctorSchedule.is_active == True,  # noqa: E712
        )
        if doctor_id is not None:
            query = query.filter(DoctorSchedule.doctor_id == doctor_id)
        return query.order_by(DoctorSchedule.id).first()

    def upsert_schedule(self, user, data: ScheduleUpsert, doctor_id: Optional[int] = None) -> DoctorSchedule:
        """Create or replace the schedule of one doctor for one date."""
        authorize(Action.MANAGE_SCHEDULE, user)

        if doctor_id is not None and doctor_id != user.id and role_of(user) != UserRole.ADMIN:
            raise Forbidden("You can only manage your own schedules")
        owner_id = doctor_id if doctor_id is not None else user.id

        try:
            schedule_date = parse_day(data.schedule_date)
        except ValueError:
            raise ValidationError("Schedule date is required in YYYY-MM-DD format")
        self._validate_hours(data)

        existing = self.db.query(DoctorSchedule).filter(
            DoctorSchedule.schedule_date == schedule_date,
            DoctorSchedule.doctor_id == owner_id,
        ).first()
        if existing is None:
            # Unassigned schedules are claimed by the first doctor who edits them
            existing = self.db.query(DoctorSchedule).filter(
                DoctorSchedule.schedule_date == schedule_date,
                DoctorSchedule.doctor_id.is_(None),
            ).first()

        if existing:
            schedule = existing
            schedule.doctor_id = owner_id
        else:
            schedule = DoctorSchedule(doctor_id=owner_id, schedule_date=schedule_date)
            self.db.add(schedule)

        schedule.start_time = data.start_time
        schedule.end_time = data.end_time
        schedule.break_start_time = data.break_start_time or None
        schedule.break_end_time = data.break_end_time or None
        schedule.slot_duration = data.slot_duration
        schedule.max_patients_per_slot = data.max_patients_per_slot
        schedule.is_active = data.is_active

        self.db.commit()
        self.db.refresh(schedule)

        logger.info(f"Schedule {schedule.id} for doctor {owner_id} on {schedule_date} saved")
        return schedule

    def delete_schedule(self, user, schedule_id: int) -> None:
        """Soft delete; the row stays with ``is_active`` cleared."""
        authorize(Action.MANAGE_SCHEDULE, user)

        schedule = self.db.query(DoctorSchedule).filter(DoctorSchedule.id == schedule_id).first()
        if not schedule:
            raise NotFound("Schedule not found")

        authorize(Action.MANAGE_SCHEDULE, user, schedule)

        schedule.is_active = False
        self.db.commit()
        logger.info(f"Schedule {schedule_id} deactivated by user {user.id}")

    def available_slots(self, day_value: str, doctor_id: Optional[int] = None) -> Dict:
        """Open slot labels of a date with the client-facing message when there are none."""
        try:
            day = parse_day(day_value)
        except ValueError:
            raise ValidationError("Date is required in YYYY-MM-DD format")

        now = self.now()
        if day < now.date():
            return {"slots": [], "message": PAST_DATE_MESSAGE}

        schedule = self.find_schedule(day, doctor_id)
        if not schedule:
            logger.info(f"No schedule set for {day}")
            return {"slots": [], "message": NO_SCHEDULE_MESSAGE}

        candidates = slots_for_schedule(schedule, day, now)

        occupancy = BookingConflictChecker(self.db).occupancy(day)
        capacity = schedule.max_patients_per_slot or 1
        slots = [label for label in candidates if occupancy.get(label, 0) < capacity]

        if day == now.date() and not slots:
            return {"slots": [], "message": CLOSED_FOR_TODAY_MESSAGE, "closed_for_today": True}

        return {"slots": slots}

    def _validate_hours(self, data: ScheduleUpsert) -> None:
        try:
            start = parse_time_label(data.start_time)
            end = parse_time_label(data.end_time)
            break_start = parse_time_label(data.break_start_time) if data.break_start_time else None
            break_end = parse_time_label(data.break_end_time) if data.break_end_time else None
        except ValueError as e:
            raise ValidationError(str(e))

        if end <= start:
            raise ValidationError("End time must be after start time")

        if (break_start is None) != (break_end is None):
            raise ValidationError("Break start and end times must be set together")

        if break_start is not None:
            if break_end <= break_start:
                raise ValidationError("Break end time must be after break start time")
            if break_start < start or break_end > end:
                raise ValidationError("Break must fall within working hours")

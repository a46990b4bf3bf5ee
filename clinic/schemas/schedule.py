from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class ScheduleUpsert(CamelModel):
    schedule_date: str
    start_time: str
    end_time: str
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None
    slot_duration: int = Field(gt=0)
    max_patients_per_slot: int = Field(default=1, gt=0)
    is_active: bool = True
    doctor_id: Optional[int] = None


class ScheduleResponse(CamelModel):
    id: int
    doctor_id: Optional[int] = None
    schedule_date: date
    start_time: str
    end_time: str
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None
    slot_duration: int
    max_patients_per_slot: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScheduleEnvelope(CamelModel):
    schedule: ScheduleResponse


class ScheduleList(CamelModel):
    schedule: List[ScheduleResponse]

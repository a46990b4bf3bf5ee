from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...api.deps import get_current_user
from ...core.database import get_db
from ...models.user import User
from ...schemas.schedule import ScheduleEnvelope, ScheduleList, ScheduleUpsert
from ...services.schedule_service import ScheduleService

router = APIRouter(prefix="/schedule", tags=["Schedule"])


@router.get("", response_model=ScheduleList)
async def list_schedules(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Upcoming active schedules."""
    return {"schedule": ScheduleService(db).list_schedules(current_user)}


@router.post("", response_model=ScheduleEnvelope)
async def save_schedule(
    data: ScheduleUpsert,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create or replace a doctor's schedule for one date."""
    schedule = ScheduleService(db).upsert_schedule(current_user, data, doctor_id=data.doctor_id)
    return {"schedule": schedule}


@router.delete("")
async def delete_schedule(
    schedule_id: int = Query(..., alias="id"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ScheduleService(db).delete_schedule(current_user, schedule_id)
    return {"success": True}

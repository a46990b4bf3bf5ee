import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from ...api.deps import get_dispatcher, get_doctor_directory
from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import Unauthorized
from ...schemas.appointment import ReminderRunResponse
from ...services.doctors import DoctorDirectory
from ...services.notifications import NotificationDispatcher
from ...services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Require ``Bearer <CRON_SECRET>`` when a secret is configured."""
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        logger.warning("Rejected cron call with a missing or wrong secret")
        raise Unauthorized()


@router.get(
    "/appointment-reminders",
    response_model=ReminderRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_cron_secret)],
)
async def appointment_reminders(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    doctors: DoctorDirectory = Depends(get_doctor_directory)
):
    """Queue reminders for appointments starting soon."""
    return ReminderService(db, dispatcher, doctors).send_due_reminders()

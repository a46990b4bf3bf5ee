from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...api.deps import get_current_user, get_dispatcher, get_doctor_directory
from ...core.database import get_db
from ...models.user import User
from ...schemas.appointment import (
    AppointmentActionResponse, AppointmentCreate, AppointmentEnvelope, AppointmentList,
    AvailableSlotsResponse, CompleteRequest, ReasonRequest, RescheduleRequest,
)
from ...services.appointment_service import AppointmentService
from ...services.doctors import DoctorDirectory
from ...services.notifications import NotificationDispatcher
from ...services.schedule_service import ScheduleService

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    doctors: DoctorDirectory = Depends(get_doctor_directory),
) -> AppointmentService:
    return AppointmentService(db, dispatcher=dispatcher, doctors=doctors)


@router.get("", response_model=AppointmentList)
async def list_appointments(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Staff see all appointments; patients see their own."""
    return {"appointments": service.list_appointments(current_user)}


@router.post("", response_model=AppointmentEnvelope, status_code=201)
async def book_appointment(
    data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Request an appointment; it stays PENDING until a doctor approves it."""
    return {"appointment": service.book(current_user, data)}


@router.get("/available-slots", response_model=AvailableSlotsResponse, response_model_exclude_none=True)
async def available_slots(
    date: str = Query(..., description="YYYY-MM-DD"),
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ScheduleService(db).available_slots(date, doctor_id)


@router.get("/{appointment_id}", response_model=AppointmentEnvelope)
async def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    return {"appointment": service.get_appointment(current_user, appointment_id)}


@router.post("/{appointment_id}/approve", response_model=AppointmentActionResponse, response_model_exclude_none=True)
async def approve_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.approve(current_user, appointment_id)
    return {"message": "Appointment approved successfully", "appointment": appointment}


@router.post("/{appointment_id}/decline", response_model=AppointmentActionResponse, response_model_exclude_none=True)
async def decline_appointment(
    appointment_id: int,
    data: ReasonRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.decline(current_user, appointment_id, data.reason)
    return {"message": "Appointment declined", "appointment": appointment}


@router.post("/{appointment_id}/cancel", response_model=AppointmentActionResponse, response_model_exclude_none=True)
async def cancel_appointment(
    appointment_id: int,
    data: ReasonRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.cancel(current_user, appointment_id, data.reason)
    return {"message": "Appointment cancelled successfully", "appointment": appointment}


@router.post("/{appointment_id}/complete", response_model=AppointmentActionResponse, response_model_exclude_none=True)
async def complete_appointment(
    appointment_id: int,
    data: CompleteRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    """Complete a visit and record its consultation fee."""
    appointment, payment = service.complete(current_user, appointment_id, data)
    return {"message": "Appointment completed successfully", "appointment": appointment, "payment": payment}


@router.post("/{appointment_id}/reschedule", response_model=AppointmentActionResponse, response_model_exclude_none=True)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service)
):
    appointment = service.reschedule(current_user, appointment_id, data)
    return {"message": "Appointment rescheduled successfully", "appointment": appointment}

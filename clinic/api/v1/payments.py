from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...api.deps import get_current_user, get_dispatcher, get_doctor_directory
from ...core.database import get_db
from ...models.user import User
from ...schemas.payment import PaymentCreate, PaymentEnvelope, PaymentList, PaymentUpdate
from ...services.doctors import DoctorDirectory
from ...services.notifications import NotificationDispatcher
from ...services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    doctors: DoctorDirectory = Depends(get_doctor_directory),
) -> PaymentService:
    return PaymentService(db, dispatcher=dispatcher, doctors=doctors)


@router.get("", response_model=PaymentList)
async def list_payments(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    return {"payments": service.list_payments(current_user)}


@router.post("", response_model=PaymentEnvelope, status_code=201)
async def record_payment(
    data: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Record a payment for an appointment."""
    return {"payment": service.record_payment(current_user, data)}


@router.patch("", response_model=PaymentEnvelope)
async def update_payment(
    data: PaymentUpdate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    return {"payment": service.update_status(current_user, data)}

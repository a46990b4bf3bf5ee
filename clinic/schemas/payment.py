from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..models.appointment import PaymentStatus
from ..models.payment import PaymentMethod
from .base import CamelModel


class PaymentCreate(CamelModel):
    appointment_id: int
    amount: float = Field(gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = None
    is_paid: bool = True


class PaymentUpdate(CamelModel):
    payment_id: int
    status: PaymentStatus


class PaymentResponse(CamelModel):
    id: int
    appointment_id: int
    amount: float
    payment_method: PaymentMethod
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentEnvelope(CamelModel):
    payment: PaymentResponse


class PaymentList(CamelModel):
    payments: List[PaymentResponse]

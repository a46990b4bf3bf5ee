from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class MedicationIn(CamelModel):
    medicine_name: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    frequency: str = Field(min_length=1)
    duration: str = Field(min_length=1)
    instructions: Optional[str] = None


class MedicationResponse(MedicationIn):
    id: int


class PrescriptionCreate(CamelModel):
    appointment_id: int
    diagnosis: str = Field(min_length=1)
    notes: Optional[str] = None
    follow_up_date: Optional[datetime] = None
    medications: List[MedicationIn] = []


class PrescriptionResponse(CamelModel):
    id: int
    appointment_id: int
    diagnosis: str
    notes: Optional[str] = None
    follow_up_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    medications: List[MedicationResponse] = []
    doctor_name: Optional[str] = None


class PrescriptionEnvelope(CamelModel):
    prescription: PrescriptionResponse


class PrescriptionList(CamelModel):
    prescriptions: List[PrescriptionResponse]

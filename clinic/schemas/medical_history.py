from datetime import datetime
from typing import List, Optional

from .base import CamelModel


class MedicalHistoryUpsert(CamelModel):
    conditions: List[str] = []
    allergies: List[str] = []
    current_medications: List[str] = []
    surgeries: List[str] = []
    family_history: Optional[str] = None


class MedicalHistoryResponse(MedicalHistoryUpsert):
    id: int
    patient_id: int
    updated_at: Optional[datetime] = None


class MedicalHistoryEnvelope(CamelModel):
    medical_history: Optional[MedicalHistoryResponse] = None
    has_completed_medical_history: bool

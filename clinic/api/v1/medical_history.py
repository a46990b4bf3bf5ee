from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...api.deps import get_current_user
from ...core.database import get_db
from ...models.user import User
from ...schemas.medical_history import MedicalHistoryEnvelope, MedicalHistoryUpsert
from ...services.medical_history_service import MedicalHistoryService

router = APIRouter(prefix="/medical-history", tags=["Medical History"])


@router.get("", response_model=MedicalHistoryEnvelope)
async def get_medical_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    history, completed = MedicalHistoryService(db).get_history(current_user)
    return {"medical_history": history, "has_completed_medical_history": completed}


@router.post("", response_model=MedicalHistoryEnvelope, status_code=201)
async def save_medical_history(
    data: MedicalHistoryUpsert,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Save the caller's medical history; required before booking."""
    history = MedicalHistoryService(db).save_history(current_user, data)
    return {"medical_history": history, "has_completed_medical_history": True}

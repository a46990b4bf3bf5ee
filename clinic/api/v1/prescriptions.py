from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...api.deps import get_current_user
from ...core.database import get_db
from ...models.user import User
from ...schemas.prescription import PrescriptionCreate, PrescriptionEnvelope, PrescriptionList
from ...services.prescription_service import PrescriptionService

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])


@router.get("", response_model=PrescriptionList)
async def list_prescriptions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"prescriptions": PrescriptionService(db).list_prescriptions(current_user)}


@router.post("", response_model=PrescriptionEnvelope, status_code=201)
async def create_prescription(
    data: PrescriptionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Write the prescription of a completed appointment."""
    return {"prescription": PrescriptionService(db).create_prescription(current_user, data)}

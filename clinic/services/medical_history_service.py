import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..core.exceptions import Forbidden, NotFound
from ..core.security import UserRole
from ..models.patient import MedicalHistory, PatientProfile
from ..schemas.medical_history import MedicalHistoryUpsert
from .permissions import role_of

logger = logging.getLogger(__name__)


class MedicalHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def _profile(self, user) -> Optional[PatientProfile]:
        return self.db.query(PatientProfile).filter(PatientProfile.user_id == user.id).first()

    def get_history(self, user) -> Tuple[Optional[MedicalHistory], bool]:
        """The caller's medical history and whether booking is unlocked."""
        profile = self._profile(user)
        if not profile:
            return None, False
        return profile.medical_history, profile.has_completed_medical_history

    def save_history(self, user, data: MedicalHistoryUpsert) -> MedicalHistory:
        if role_of(user) != UserRole.PATIENT:
            raise Forbidden("Only patients can submit medical history")

        profile = self._profile(user)
        if not profile:
            raise NotFound("Patient profile not found")

        history = profile.medical_history
        if history is None:
            history = MedicalHistory(patient_id=profile.id)
            self.db.add(history)

        history.conditions = list(data.conditions)
        history.allergies = list(data.allergies)
        history.current_medications = list(data.current_medications)
        history.surgeries = list(data.surgeries)
        history.family_history = data.family_history
        profile.has_completed_medical_history = True

        self.db.commit()
        self.db.refresh(history)

        logger.info(f"Medical history saved for patient {profile.id}")
        return history

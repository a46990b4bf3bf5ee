"""Doctor display details used in notifications.

Lookups go through a short-TTL cache keyed by doctor id, so an edited
profile is picked up once its entry expires or is invalidated.
"""
import json
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.security import UserRole
from ..models.doctor import DoctorProfile
from ..models.user import User

logger = logging.getLogger(__name__)

CACHE_PREFIX = "doctor_info"


@dataclass
class DoctorInfo:
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    speciality: Optional[str] = None
    upi_id: Optional[str] = None
    clinic_address: Optional[str] = None


class DoctorDirectory:
    def __init__(self, db: Session, cache, ttl: int = None):
        self.db = db
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.DOCTOR_CACHE_TTL_SECONDS

    def get(self, doctor_id: Optional[int]) -> Optional[DoctorInfo]:
        """Doctor details by id; unassigned appointments have none."""
        if doctor_id is None:
            return None

        key = f"{CACHE_PREFIX}:{doctor_id}"
        cached = self.cache.get(key)
        if cached:
            return DoctorInfo(**json.loads(cached))

        info = self._load(doctor_id)
        if info is not None and self.ttl > 0:
            self.cache.setex(key, self.ttl, json.dumps(asdict(info)))
        return info

    def invalidate(self, doctor_id: int) -> None:
        self.cache.delete(f"{CACHE_PREFIX}:{doctor_id}")

    def _load(self, doctor_id: int) -> Optional[DoctorInfo]:
        user = self.db.query(User).filter(User.id == doctor_id).first()
        if not user or not UserRole(user.role).is_staff:
            logger.warning(f"Doctor {doctor_id} not found")
            return None

        profile = self.db.query(DoctorProfile).filter(
            DoctorProfile.user_id == doctor_id
        ).first()

        return DoctorInfo(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            speciality=profile.speciality if profile else None,
            upi_id=profile.upi_id if profile else None,
            clinic_address=profile.clinic_address if profile else None,
        )

import logging
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import Unauthorized, ValidationError
from ..core.security import UserRole, create_access_token, get_password_hash, verify_password
from ..models.patient import PatientProfile
from ..models.user import User
from ..schemas.auth import TokenResponse, UserLogin, UserRegister, UserResponse

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_patient(self, user_data: UserRegister) -> User:
        """Register a new patient together with an empty patient profile."""
        email = user_data.email.lower()

        existing_user = self.db.query(User).filter(User.email == email).first()
        if existing_user:
            raise ValidationError("Email already registered")

        if user_data.preferred_doctor_id is not None:
            doctor = self.db.query(User).filter(
                User.id == user_data.preferred_doctor_id,
                User.role == UserRole.DOCTOR,
            ).first()
            if not doctor:
                raise ValidationError("Preferred doctor not found")

        new_user = User(
            email=email,
            name=user_data.name.strip(),
            phone=user_data.phone,
            password_hash=get_password_hash(user_data.password),
            role=UserRole.PATIENT,
            is_active=True,
        )
        new_user.patient_profile = PatientProfile(
            preferred_doctor_id=user_data.preferred_doctor_id,
            dob=user_data.dob,
            gender=user_data.gender,
            address=user_data.address,
            emergency_contact=user_data.emergency_contact,
        )

        self.db.add(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered patient {new_user.id}")
        return new_user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Check credentials and issue an access token."""
        user = self.db.query(User).filter(User.email == login_data.email.lower()).first()

        if not user or not user.password_hash or not verify_password(login_data.password, user.password_hash):
            logger.warning(f"Failed login for {login_data.email}")
            raise Unauthorized("Invalid email or password")

        if not user.is_active:
            raise Unauthorized("User account is deactivated")

        access_token = create_access_token(user.id, user.email, user.role)

        return TokenResponse(
            access_token=access_token,
            expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=UserResponse.model_validate(user),
        )

from typing import Optional

from fastapi import BackgroundTasks, Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..core.database import get_db, get_redis
from ..core.exceptions import Unauthorized
from ..core.security import TokenPayload, security, verify_token
from ..models.user import User
from ..services.doctors import DoctorDirectory
from ..services.notifications import NotificationDispatcher


async def get_current_user_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    if credentials is None:
        raise Unauthorized()

    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise Unauthorized("Invalid or expired token")

    if token_payload.token_type != "access":
        raise Unauthorized("Invalid token type")

    return token_payload


async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if not token_payload.sub:
        raise Unauthorized("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise Unauthorized("User not found")

    if not user.is_active:
        raise Unauthorized("User account is deactivated")

    return user


def get_dispatcher(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    """Side-effect dispatcher bound to the request's background tasks."""
    return NotificationDispatcher(background_tasks)


def get_doctor_directory(db: Session = Depends(get_db)) -> DoctorDirectory:
    return DoctorDirectory(db, get_redis())

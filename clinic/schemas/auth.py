from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from ..core.security import UserRole
from .base import CamelModel


class UserRegister(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = None
    dob: Optional[datetime] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    preferred_doctor_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not any(ch.isdigit() for ch in value) or not any(ch.isalpha() for ch in value):
            raise ValueError("Password must contain letters and digits")
        return value


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class UserResponse(CamelModel):
    id: int
    email: str
    name: str
    phone: Optional[str] = None
    role: UserRole
    is_active: bool


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse

import re
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
from app.models import UserRole, VerificationStatus

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,128}$")
PHONE_PATTERN = re.compile(r"^(\+91)?[6-9]\d{9}$")


def _check_password(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must be at least 8 characters and contain an uppercase letter, "
            "a lowercase letter, a number, and a special character"
        )
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value is not None:
        value = value.strip()
        if not PHONE_PATTERN.match(value):
            raise ValueError("Invalid phone number format")
    return value


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower().strip()

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return _check_password(v)

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v):
        return _check_phone(v)


class LawyerCreate(UserCreate):
    phone: str
    bar_council_id: str = Field(..., min_length=5, max_length=50)
    bar_council_state: str = Field(..., min_length=2, max_length=50)
    enrollment_year: int = Field(..., ge=1950)
    city: Optional[str] = None
    state: Optional[str] = None

    @field_validator("bar_council_id")
    @classmethod
    def upper_bar_id(cls, v):
        return v.strip().upper()

    @field_validator("enrollment_year")
    @classmethod
    def not_future(cls, v):
        if v > datetime.utcnow().year:
            raise ValueError("Enrollment year cannot be in the future")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower().strip()


class GoogleLoginRequest(BaseModel):
    id_token: str


class TokenRequest(BaseModel):
    token: str


class EmailRequest(BaseModel):
    email: EmailStr


class RefreshRequest(BaseModel):
    refresh_token: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return _check_password(v)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v):
        return _check_password(v)


class LawyerSummary(BaseModel):
    id: str
    slug: Optional[str] = None
    verification_status: VerificationStatus

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    role: UserRole
    is_active: bool
    is_email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    lawyer: Optional[LawyerSummary] = None

    class Config:
        from_attributes = True

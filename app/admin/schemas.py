from pydantic import BaseModel, Field
from typing import Literal, Optional
from app.models import UserRole


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserRoleUpdate(BaseModel):
    role: UserRole


class LawyerVerification(BaseModel):
    action: Literal["approve", "reject"]
    rejection_reason: Optional[str] = Field(None, max_length=2000)


class PracticeAreaCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=100)
    display_order: int = 0


class PracticeAreaUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=100)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

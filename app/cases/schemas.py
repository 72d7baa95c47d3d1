from pydantic import BaseModel, Field, field_validator
from typing import Optional
from app.models import CasePriority, CaseStatus


class CaseCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    priority: CasePriority = CasePriority.MEDIUM
    # Users open a case from a completed booking; lawyers name the client directly
    booking_id: Optional[str] = None
    client_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Title is required")
        return v.strip()


class CaseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[CaseStatus] = None
    priority: Optional[CasePriority] = None


class CaseReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)

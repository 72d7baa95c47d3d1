from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal


class DaySchedule(BaseModel):
    enabled: bool = True
    start: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")


class LawyerProfileUpdate(BaseModel):
    # User fields
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = None
    # Lawyer fields
    bio: Optional[str] = Field(None, max_length=5000)
    headline: Optional[str] = Field(None, max_length=255)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    consultation_fee: Optional[Decimal] = Field(None, ge=0)
    city: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    availability: Optional[Dict[str, DaySchedule]] = None
    languages: Optional[List[str]] = None
    experience: Optional[int] = Field(None, ge=0, le=80)
    specializations: Optional[List[str]] = None  # practice area names or slugs

    @field_validator("availability")
    @classmethod
    def known_days(cls, v):
        if v is None:
            return v
        days = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
        unknown = set(k.lower() for k in v) - days
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        return {k.lower(): s for k, s in v.items()}


class PaymentCredentialsUpdate(BaseModel):
    bank_account_name: Optional[str] = Field(None, max_length=255)
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_ifsc_code: Optional[str] = Field(None, max_length=20)
    upi_id: Optional[str] = Field(None, max_length=100)


class AvailabilityToggle(BaseModel):
    is_available: bool


class BlockedPeriodCreate(BaseModel):
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None


class BlockedPeriodResponse(BaseModel):
    id: str
    start_date: datetime
    end_date: datetime
    reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PracticeAreaResponse(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None

    class Config:
        from_attributes = True

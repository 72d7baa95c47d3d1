from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date

from app.constants import BOOKING_DURATIONS, DEFAULT_BOOKING_DURATION
from app.models import MeetingType


class BookingCreate(BaseModel):
    lawyer_id: str
    scheduled_date: date
    scheduled_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    duration: int = DEFAULT_BOOKING_DURATION
    meeting_type: MeetingType = MeetingType.VIDEO
    client_notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("duration")
    @classmethod
    def allowed_duration(cls, v):
        if v not in BOOKING_DURATIONS:
            raise ValueError(f"Duration must be one of {', '.join(str(d) for d in BOOKING_DURATIONS)} minutes")
        return v


class BookingConfirm(BaseModel):
    meeting_link: Optional[str] = Field(None, max_length=500)
    lawyer_notes: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class BookingComplete(BaseModel):
    lawyer_notes: Optional[str] = None

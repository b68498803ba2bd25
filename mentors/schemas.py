import uuid
from datetime import datetime, time
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

# 24-hour "HH:MM" on the wire
ClockTime = Annotated[
    time, PlainSerializer(lambda t: t.strftime("%H:%M"), return_type=str, when_used="json")
]


class MentorProfileBase(BaseModel):
    public_handle: str = Field(..., max_length=50, pattern="^[a-z0-9-]+$")
    specialty: str | None = Field(None, max_length=100)
    bio: str | None = None
    skills: list[str] = Field(default_factory=list)
    hourly_rate: float = Field(0.0, ge=0)
    session_duration_minutes: int = Field(60, ge=15, le=180)


class MentorProfileCreate(MentorProfileBase):
    pass


class MentorProfileUpdate(BaseModel):
    public_handle: str | None = Field(None, max_length=50, pattern="^[a-z0-9-]+$")
    specialty: str | None = Field(None, max_length=100)
    bio: str | None = None
    skills: list[str] | None = None
    hourly_rate: float | None = Field(None, ge=0)
    session_duration_minutes: int | None = Field(None, ge=15, le=180)


class MentorProfileRead(MentorProfileBase):
    user_id: uuid.UUID
    full_name: str | None = None
    is_verified: bool
    is_active: bool
    sessions_completed: int
    average_rating: float
    total_ratings: int

    model_config = ConfigDict(from_attributes=True)


class MentorVerificationUpdate(BaseModel):
    is_verified: bool | None = None
    is_active: bool | None = None


class AvailabilityWindowBase(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    start_time: ClockTime
    end_time: ClockTime
    is_recurring: bool = True

    @field_validator("end_time")
    def check_time_order(cls, v, values):
        if "start_time" in values.data and v <= values.data["start_time"]:
            raise ValueError("end_time must be after start_time")
        return v


class AvailabilityWindowCreate(AvailabilityWindowBase):
    pass


class AvailabilityWindowRead(AvailabilityWindowBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


class WeeklyAvailabilityUpdate(BaseModel):
    availability: list[AvailabilityWindowCreate]


class SlotRead(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool
    window_id: int

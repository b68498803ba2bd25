import uuid
import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mentors.schemas import ClockTime


class TimeSlotCreate(BaseModel):
    start_time: ClockTime
    end_time: ClockTime

    @field_validator("end_time")
    def check_time_order(cls, v, values):
        if "start_time" in values.data and v <= values.data["start_time"]:
            raise ValueError("end_time must be after start_time")
        return v


class TimeSlotRead(BaseModel):
    id: int
    start_time: ClockTime
    end_time: ClockTime
    is_booked: bool
    session_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityDateCreate(BaseModel):
    date: dt.date
    time_slots: list[TimeSlotCreate] = Field(..., min_length=1)


class AvailabilityDateRead(BaseModel):
    id: int
    date: dt.date
    time_slots: list[TimeSlotRead]

    model_config = ConfigDict(from_attributes=True)


class AvailabilitySet(BaseModel):
    availability_dates: list[AvailabilityDateCreate]
    recurrence_rule: str | None = Field(None, max_length=255)
    is_active: bool = True


class AvailabilityRead(BaseModel):
    mentor_id: uuid.UUID
    recurrence_rule: str | None = None
    is_active: bool = False
    availability_dates: list[AvailabilityDateRead] = Field(default_factory=list)


class SlotStatusUpdate(BaseModel):
    is_booked: bool
    session_id: int | None = None


class AvailableSlotRead(BaseModel):
    id: int
    date_id: int
    start_time: ClockTime
    end_time: ClockTime

    model_config = ConfigDict(from_attributes=True)


class AvailableMentorRead(BaseModel):
    mentor_id: uuid.UUID
    public_handle: str
    full_name: str
    skills: list[str]
    hourly_rate: float
    average_rating: float
    slots: list[AvailableSlotRead]

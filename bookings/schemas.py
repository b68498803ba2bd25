import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from reviews.schemas import RatingAggregate


class Feedback(BaseModel):
    content: str | None = None
    rating: int
    submitted_at: datetime


class SessionCreate(BaseModel):
    mentor_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    start_time: datetime
    duration_minutes: int = Field(..., ge=15, le=240)
    meeting_type: Literal["video", "audio", "in-person", "chat"] | None = None


class SessionRead(BaseModel):
    id: int
    mentor_id: uuid.UUID
    learner_id: uuid.UUID
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    duration: int
    status: str
    meeting_type: str
    meeting_link: str | None = None
    price: float
    mentor_time_zone: str
    learner_time_zone: str
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    mentor_feedback: Feedback | None = None
    learner_feedback: Feedback | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionPage(BaseModel):
    sessions: list[SessionRead]
    total_sessions: int
    total_pages: int
    current_page: int


class SessionUpdateStatus(BaseModel):
    status: str = Field(..., pattern="^(confirmed|cancelled|completed|no-show)$")
    reason: str | None = Field(None, max_length=500)


class FeedbackCreate(BaseModel):
    content: str = Field(..., max_length=2000)
    rating: int = Field(..., ge=1, le=5)


class FeedbackResult(BaseModel):
    session: SessionRead
    rating: RatingAggregate | None = None

import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ModerationAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


class ReviewRead(BaseModel):
    id: int
    mentor_id: uuid.UUID
    reviewer_id: uuid.UUID
    session_id: int | None = None
    rating: int
    comment: str | None = None
    is_approved: bool
    is_hidden: bool
    moderation_reason: str | None = None
    moderated_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RatingAggregate(BaseModel):
    average_rating: float
    total_ratings: int


class ModerationRequest(BaseModel):
    action: ModerationAction
    reason: str | None = Field(None, max_length=255)


class ModerationResult(BaseModel):
    review: ReviewRead | None
    rating: RatingAggregate

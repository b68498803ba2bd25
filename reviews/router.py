import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_async_session
from notifications import NotificationSink, get_notification_sink
from reviews import ratings
from reviews.schemas import ModerationRequest, ModerationResult, RatingAggregate, ReviewRead
from users.dependencies import get_current_admin
from users.models import User

router = APIRouter()


@router.get("/mentors/{mentor_id}", response_model=list[ReviewRead])
async def get_mentor_reviews(
    mentor_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),
):
    return await ratings.list_reviews(session, mentor_id)


@router.put("/{review_id}/moderate", response_model=ModerationResult)
async def moderate_review(
    review_id: int,
    payload: ModerationRequest,
    admin: User = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    review, mentor = await ratings.moderate_review(
        session,
        review_id,
        payload.action,
        admin.id,
        reason=payload.reason,
        notifier=notifier,
    )
    return ModerationResult(
        review=ReviewRead.model_validate(review) if review is not None else None,
        rating=RatingAggregate(average_rating=mentor.average_rating, total_ratings=mentor.total_ratings),
    )

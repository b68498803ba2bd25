"""
Mentor rating aggregate.

Two recompute paths feed ``MentorProfile.average_rating/total_ratings``:

* incremental: each learner feedback folds its raw rating into the running
  mean and appends an unmoderated review;
* full recompute: any moderation action rebuilds the aggregate from the
  approved reviews only, rounded to one decimal.

The paths count different review sets and round differently, so the value
after a moderation action can differ from the running mean it replaces.
"""
import logging
import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db import utcnow
from exceptions import NotFoundException, ValidationException
from locks import mentor_lock, retry_on_contention
from mentors.models import MentorProfile
from mentors.service import get_mentor
from notifications import NotificationSink, dispatch, get_notification_sink
from reviews.models import Review
from reviews.schemas import ModerationAction

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Violated platform guidelines"


def incremental_average(average: float, count: int, rating: int) -> tuple[float, int]:
    new_count = count + 1
    return (average * count + rating) / new_count, new_count


def approved_average(ratings: Sequence[int]) -> tuple[float, int]:
    if not ratings:
        return 0.0, 0
    # Round the float mean as stored: 87/20 is 4.3499.. in binary and rounds to 4.3
    mean = Decimal(sum(ratings) / len(ratings))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)), len(ratings)


def validate_rating(rating: int) -> None:
    if rating is None or rating < 1 or rating > 5:
        raise ValidationException("Rating must be between 1 and 5", details={"rating": rating})


async def apply_learner_rating(
    session: AsyncSession,
    mentor: MentorProfile,
    reviewer_id: uuid.UUID,
    rating: int,
    comment: Optional[str],
    session_id: Optional[int] = None,
) -> Review:
    """
    Incremental path. The caller holds the mentor lock, has the mentor row
    selected for update, and commits.
    """
    validate_rating(rating)
    mentor.average_rating, mentor.total_ratings = incremental_average(
        mentor.average_rating, mentor.total_ratings, rating
    )
    review = Review(
        mentor_id=mentor.user_id,
        reviewer_id=reviewer_id,
        session_id=session_id,
        rating=rating,
        comment=comment,
    )
    session.add(review)
    logger.info(
        "rating applied",
        extra={
            "mentor_id": str(mentor.user_id),
            "rating": rating,
            "average_rating": mentor.average_rating,
            "total_ratings": mentor.total_ratings,
        },
    )
    return review


async def recompute_from_approved(session: AsyncSession, mentor: MentorProfile) -> MentorProfile:
    """Full-recompute path over the mentor's approved reviews."""
    await session.flush()
    result = await session.execute(
        select(Review.rating).where(
            Review.mentor_id == mentor.user_id,
            Review.is_approved.is_(True),
        )
    )
    mentor.average_rating, mentor.total_ratings = approved_average(list(result.scalars().all()))
    return mentor


async def list_reviews(
    session: AsyncSession, mentor_id: uuid.UUID, include_hidden: bool = False
) -> Sequence[Review]:
    await get_mentor(session, mentor_id)
    query = select(Review).where(Review.mentor_id == mentor_id)
    if not include_hidden:
        query = query.where(Review.is_hidden.is_(False))
    result = await session.execute(query.order_by(Review.created_at.desc(), Review.id.desc()))
    return result.scalars().all()


@retry_on_contention("review moderation")
async def moderate_review(
    session: AsyncSession,
    review_id: int,
    action: ModerationAction,
    moderator_id: uuid.UUID,
    reason: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> tuple[Optional[Review], MentorProfile]:
    """Approve, reject or delete a review, then rebuild the mentor's aggregate."""
    review = await session.get(Review, review_id)
    if review is None:
        raise NotFoundException("Review not found", details={"review_id": review_id})
    mentor_id = review.mentor_id
    now = now or utcnow()

    async with mentor_lock(mentor_id):
        mentor = await get_mentor(session, mentor_id, for_update=True)

        if action == ModerationAction.APPROVE:
            review.is_approved = True
            review.moderated_by = moderator_id
            review.moderated_at = now
        elif action == ModerationAction.REJECT:
            review.is_approved = False
            review.is_hidden = True
            review.moderation_reason = reason or DEFAULT_REJECTION_REASON
            review.moderated_by = moderator_id
            review.moderated_at = now
        else:
            await session.delete(review)
            review = None

        await recompute_from_approved(session, mentor)
        await session.commit()

    logger.info(
        "review moderated",
        extra={
            "review_id": review_id,
            "action": action.value,
            "mentor_id": str(mentor_id),
            "average_rating": mentor.average_rating,
            "total_ratings": mentor.total_ratings,
        },
    )
    await dispatch(
        notifier or get_notification_sink(),
        "review.moderated",
        {
            "review_id": review_id,
            "action": action.value,
            "mentor_id": str(mentor_id),
            "moderator_id": str(moderator_id),
        },
    )
    return review, mentor

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookings import engine, queries, state
from bookings.schemas import (
    FeedbackCreate,
    FeedbackResult,
    SessionCreate,
    SessionPage,
    SessionRead,
    SessionUpdateStatus,
)
from db import get_async_session
from notifications import NotificationSink, get_notification_sink
from reviews.schemas import RatingAggregate
from users.dependencies import current_active_user, get_current_learner, get_current_mentor
from users.models import User

router = APIRouter()


@router.post("/", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def create_session(
    booking: SessionCreate,
    user: User = Depends(get_current_learner),
    session: AsyncSession = Depends(get_async_session),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    return await engine.book_session(
        session,
        learner_id=user.id,
        mentor_id=booking.mentor_id,
        title=booking.title,
        start_time=booking.start_time,
        duration_minutes=booking.duration_minutes,
        description=booking.description,
        meeting_type=booking.meeting_type,
        notifier=notifier,
    )


@router.get("/", response_model=SessionPage)
async def get_my_sessions(
    status: Optional[str] = None,
    timeframe: Optional[Literal["upcoming", "past", "today"]] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await queries.list_sessions(
        session, user, status=status, timeframe=timeframe, page=page, limit=limit
    )


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(
    session_id: int,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await queries.get_session(session, session_id, user)


@router.put("/{session_id}/status", response_model=SessionRead)
async def update_session_status(
    session_id: int,
    status_update: SessionUpdateStatus,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    return await state.update_status(
        session,
        session_id,
        user.id,
        status_update.status,
        reason=status_update.reason,
        notifier=notifier,
    )


@router.post("/{session_id}/feedback", response_model=FeedbackResult)
async def submit_feedback(
    session_id: int,
    feedback: FeedbackCreate,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
    notifier: NotificationSink = Depends(get_notification_sink),
):
    updated, mentor = await state.submit_feedback(
        session, session_id, user.id, feedback.content, feedback.rating, notifier=notifier
    )
    rating = None
    if mentor is not None:
        rating = RatingAggregate(average_rating=mentor.average_rating, total_ratings=mentor.total_ratings)
    return FeedbackResult(session=SessionRead.model_validate(updated), rating=rating)


@router.post("/{session_id}/meeting-link", response_model=SessionRead)
async def generate_meeting_link(
    session_id: int,
    user: User = Depends(get_current_mentor),
    session: AsyncSession = Depends(get_async_session),
):
    return await state.generate_meeting_link(session, session_id, user.id)

"""
Session lifecycle.

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled | no-show

cancelled, completed and no-show are terminal. Every operation checks, in
order: the session exists, the caller may act on it, the transition is
legal from the current status, and its time gate is open.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bookings.models import MentorSession, SessionStatus
from config import settings
from db import utcnow
from exceptions import (
    ForbiddenException,
    InsufficientNoticeException,
    NotFoundException,
    StateTransitionException,
    ValidationException,
)
from locks import mentor_lock, retry_on_contention
from mentors.models import ActiveSession, MentorProfile
from mentors.service import get_mentor
from notifications import NotificationSink, dispatch, get_notification_sink
from reviews.ratings import apply_learner_rating, validate_rating

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    SessionStatus.PENDING.value: frozenset(
        {SessionStatus.CONFIRMED.value, SessionStatus.CANCELLED.value}
    ),
    SessionStatus.CONFIRMED.value: frozenset(
        {SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value, SessionStatus.NO_SHOW.value}
    ),
}

DEFAULT_CANCELLATION_REASON = "No reason provided"


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


async def _load(session: AsyncSession, session_id: int, for_update: bool = False) -> MentorSession:
    query = select(MentorSession).where(MentorSession.id == session_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    mentor_session = result.scalar_one_or_none()
    if mentor_session is None:
        raise NotFoundException("Session not found", details={"session_id": session_id})
    return mentor_session


def _authorize(mentor_session: MentorSession, actor_id: uuid.UUID, target: str) -> None:
    if target == SessionStatus.CANCELLED.value:
        if actor_id not in (mentor_session.mentor_id, mentor_session.learner_id):
            raise ForbiddenException("Not authorized to cancel this session")
    elif actor_id != mentor_session.mentor_id:
        raise ForbiddenException(f"Only the mentor can mark this session {target}")


def _check_time_gate(mentor_session: MentorSession, target: str, now: datetime) -> None:
    if target == SessionStatus.CANCELLED.value:
        notice = timedelta(hours=settings.cancellation_notice_hours)
        if not now + notice < mentor_session.start_time:
            lead = (mentor_session.start_time - now).total_seconds() / 3600
            raise InsufficientNoticeException(settings.cancellation_notice_hours, lead)
    elif target == SessionStatus.COMPLETED.value:
        if now < mentor_session.end_time:
            raise StateTransitionException(
                "Cannot mark a session as completed before its end time",
                code="SESSION_NOT_ENDED",
                details={"end_time": mentor_session.end_time.isoformat()},
            )
    elif target == SessionStatus.NO_SHOW.value:
        if now < mentor_session.start_time:
            raise StateTransitionException(
                "Cannot mark a no-show before the session has started",
                code="SESSION_NOT_STARTED",
                details={"start_time": mentor_session.start_time.isoformat()},
            )


async def _complete(session: AsyncSession, mentor_session: MentorSession) -> None:
    await session.execute(
        update(MentorProfile)
        .where(MentorProfile.user_id == mentor_session.mentor_id)
        .values(sessions_completed=MentorProfile.sessions_completed + 1)
    )
    await session.execute(
        delete(ActiveSession).where(
            ActiveSession.mentor_id == mentor_session.mentor_id,
            ActiveSession.session_id == mentor_session.id,
        )
    )


@retry_on_contention("session status update")
async def update_status(
    session: AsyncSession,
    session_id: int,
    actor_id: uuid.UUID,
    target: str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> MentorSession:
    now = now or utcnow()
    try:
        target = SessionStatus(target).value
    except ValueError:
        raise ValidationException("Unknown session status", details={"status": target})
    if target == SessionStatus.PENDING.value:
        raise ValidationException("A session cannot be moved back to pending")

    mentor_session = await _load(session, session_id)
    async with mentor_lock(mentor_session.mentor_id):
        mentor_session = await _load(session, session_id, for_update=True)
        _authorize(mentor_session, actor_id, target)

        current = mentor_session.status
        if not can_transition(current, target):
            raise StateTransitionException(
                f"Cannot move a {current} session to {target}",
                code="ILLEGAL_TRANSITION",
                details={"from": current, "to": target},
            )
        _check_time_gate(mentor_session, target, now)

        if target == SessionStatus.CANCELLED.value:
            mentor_session.cancelled_by = "mentor" if actor_id == mentor_session.mentor_id else "learner"
            mentor_session.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON
        elif target == SessionStatus.COMPLETED.value:
            await _complete(session, mentor_session)

        mentor_session.status = target
        await session.commit()
        await session.refresh(mentor_session)

    logger.info(
        "session status changed",
        extra={"session_id": session_id, "from": current, "to": target, "actor_id": str(actor_id)},
    )
    await dispatch(
        notifier or get_notification_sink(),
        f"session.{target}",
        {
            "session_id": session_id,
            "mentor_id": str(mentor_session.mentor_id),
            "learner_id": str(mentor_session.learner_id),
            "actor_id": str(actor_id),
            "reason": mentor_session.cancellation_reason,
        },
    )
    return mentor_session


@retry_on_contention("session feedback")
async def submit_feedback(
    session: AsyncSession,
    session_id: int,
    actor_id: uuid.UUID,
    content: str,
    rating: int,
    notifier: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> tuple[MentorSession, Optional[MentorProfile]]:
    """
    Record one party's feedback on a completed session.

    Learner feedback also folds the rating into the mentor's running
    average; the updated mentor is returned in that case.
    """
    now = now or utcnow()
    validate_rating(rating)

    mentor_session = await _load(session, session_id)
    async with mentor_lock(mentor_session.mentor_id):
        mentor_session = await _load(session, session_id, for_update=True)

        if actor_id == mentor_session.learner_id:
            field = "learner_feedback"
        elif actor_id == mentor_session.mentor_id:
            field = "mentor_feedback"
        else:
            raise ForbiddenException("Not authorized to submit feedback for this session")

        if mentor_session.status != SessionStatus.COMPLETED.value:
            raise StateTransitionException(
                "Can only submit feedback for completed sessions",
                code="SESSION_NOT_COMPLETED",
                details={"status": mentor_session.status},
            )
        if getattr(mentor_session, field) is not None:
            raise StateTransitionException(
                "Feedback has already been submitted for this session",
                code="FEEDBACK_EXISTS",
            )

        setattr(
            mentor_session,
            field,
            {"content": content, "rating": rating, "submitted_at": now.isoformat()},
        )

        mentor = None
        if field == "learner_feedback":
            mentor = await get_mentor(session, mentor_session.mentor_id, for_update=True)
            await apply_learner_rating(
                session, mentor, actor_id, rating, content, session_id=mentor_session.id
            )

        await session.commit()
        await session.refresh(mentor_session)

    await dispatch(
        notifier or get_notification_sink(),
        "session.feedback",
        {
            "session_id": session_id,
            "from": "learner" if mentor is not None else "mentor",
            "rating": rating,
            "mentor_id": str(mentor_session.mentor_id),
            "learner_id": str(mentor_session.learner_id),
        },
    )
    return mentor_session, mentor


async def generate_meeting_link(
    session: AsyncSession, session_id: int, actor_id: uuid.UUID
) -> MentorSession:
    mentor_session = await _load(session, session_id)
    if actor_id != mentor_session.mentor_id:
        raise ForbiddenException("Not authorized to generate meeting link")
    if mentor_session.status != SessionStatus.CONFIRMED.value:
        raise StateTransitionException(
            "Can only generate links for confirmed sessions",
            code="SESSION_NOT_CONFIRMED",
            details={"status": mentor_session.status},
        )
    mentor_session.meeting_link = f"{settings.meeting_link_base_url}/{mentor_session.id}"
    await session.commit()
    await session.refresh(mentor_session)
    return mentor_session

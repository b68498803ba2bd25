"""
Booking engine: the single entry point that turns a learner's request into
a persisted ``pending`` session.

Validation runs in a fixed order (mentor, time, weekly window, conflict,
learner) inside the mentor's critical section, and nothing is written
until every check has passed.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bookings.conflicts import find_conflicts
from bookings.models import ACTIVE_STATUSES, MeetingType, MentorSession, SessionStatus
from db import utcnow
from exceptions import (
    BookingConflictException,
    NotFoundException,
    UnavailableException,
    ValidationException,
)
from locks import mentor_lock, retry_on_contention
from mentors.models import ActiveSession, AvailabilityWindow, MentorProfile
from mentors.service import covers, get_mentor, to_schedule_clock
from notifications import NotificationSink, dispatch, get_notification_sink
from users.models import User

logger = logging.getLogger(__name__)


def compute_price(hourly_rate: float, duration_minutes: int) -> float:
    return round(hourly_rate * (duration_minutes / 60), 2)


def _check_mentor_bookable(mentor: MentorProfile) -> None:
    if not mentor.is_verified or not mentor.is_active:
        raise UnavailableException(
            "This mentor is not available for bookings",
            code="MENTOR_UNAVAILABLE",
            details={
                "mentor_id": str(mentor.user_id),
                "is_verified": mentor.is_verified,
                "is_active": mentor.is_active,
            },
        )


def _resolve_interval(start_time: datetime, duration_minutes: int, now: datetime) -> tuple[datetime, datetime]:
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationException(
            "Session duration must be a positive number of minutes",
            details={"duration": duration_minutes},
        )
    start = to_schedule_clock(start_time)
    if start <= now:
        raise ValidationException(
            "Session start time must be in the future",
            code="START_NOT_IN_FUTURE",
            details={"start_time": start.isoformat(), "now": now.isoformat()},
        )
    return start, start + timedelta(minutes=duration_minutes)


async def _check_within_windows(
    session: AsyncSession, mentor_id: uuid.UUID, start: datetime, end: datetime
) -> None:
    result = await session.execute(
        select(AvailabilityWindow).where(AvailabilityWindow.mentor_id == mentor_id)
    )
    if not covers(result.scalars().all(), start, end):
        raise UnavailableException(
            "Mentor is not available at this time",
            code="OUTSIDE_AVAILABILITY",
            details={"start_time": start.isoformat(), "end_time": end.isoformat()},
        )


async def _check_conflicts(
    session: AsyncSession, mentor_id: uuid.UUID, start: datetime, end: datetime
) -> None:
    result = await session.execute(
        select(MentorSession).where(
            MentorSession.mentor_id == mentor_id,
            MentorSession.status.in_(ACTIVE_STATUSES),
            MentorSession.start_time < end,
            MentorSession.end_time > start,
        )
    )
    conflicts = find_conflicts(result.scalars().all(), start, end)
    if conflicts:
        existing = conflicts[0]
        logger.info(
            "booking conflict",
            extra={"mentor_id": str(mentor_id), "conflicting_session_id": existing.id},
        )
        raise BookingConflictException(
            details={
                "conflicting_session": {
                    "id": existing.id,
                    "start_time": existing.start_time.isoformat(),
                    "end_time": existing.end_time.isoformat(),
                    "status": existing.status,
                }
            }
        )


@retry_on_contention("booking")
async def book_session(
    session: AsyncSession,
    learner_id: uuid.UUID,
    mentor_id: uuid.UUID,
    title: str,
    start_time: datetime,
    duration_minutes: int,
    description: Optional[str] = None,
    meeting_type: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> MentorSession:
    now = now or utcnow()
    if not title or not title.strip():
        raise ValidationException("Session title is required")
    try:
        meeting_type = MeetingType(meeting_type or MeetingType.VIDEO.value).value
    except ValueError:
        raise ValidationException("Unknown meeting type", details={"meeting_type": meeting_type})

    async with mentor_lock(mentor_id):
        mentor = await get_mentor(session, mentor_id, for_update=True)
        _check_mentor_bookable(mentor)

        start, end = _resolve_interval(start_time, duration_minutes, now)
        await _check_within_windows(session, mentor_id, start, end)
        await _check_conflicts(session, mentor_id, start, end)

        learner = await session.get(User, learner_id)
        if learner is None:
            raise NotFoundException("Learner not found", details={"learner_id": str(learner_id)})
        mentor_user = await session.get(User, mentor_id)

        booked = MentorSession(
            mentor_id=mentor_id,
            learner_id=learner_id,
            title=title.strip(),
            description=description,
            start_time=start,
            end_time=end,
            duration=duration_minutes,
            status=SessionStatus.PENDING.value,
            meeting_type=meeting_type,
            price=compute_price(mentor.hourly_rate, duration_minutes),
            mentor_time_zone=mentor_user.timezone if mentor_user else "UTC",
            learner_time_zone=learner.timezone,
        )
        session.add(booked)
        await session.flush()
        session.add(ActiveSession(mentor_id=mentor_id, session_id=booked.id))
        await session.commit()
        await session.refresh(booked)

    logger.info(
        "session booked",
        extra={
            "session_id": booked.id,
            "mentor_id": str(mentor_id),
            "learner_id": str(learner_id),
            "start_time": booked.start_time.isoformat(),
            "duration": duration_minutes,
        },
    )
    await dispatch(
        notifier or get_notification_sink(),
        "session.booked",
        {
            "session_id": booked.id,
            "mentor_id": str(mentor_id),
            "learner_id": str(learner_id),
            "start_time": booked.start_time.isoformat(),
        },
    )
    return booked

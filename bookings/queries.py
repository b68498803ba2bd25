import math
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookings.models import ACTIVE_STATUSES, MentorSession
from config import settings
from db import utcnow
from exceptions import ForbiddenException, NotFoundException, ValidationException
from users.models import AccountKind, User

TIMEFRAMES = ("upcoming", "past", "today")


async def get_session(session: AsyncSession, session_id: int, actor: User) -> MentorSession:
    mentor_session = await session.get(MentorSession, session_id)
    if mentor_session is None:
        raise NotFoundException("Session not found", details={"session_id": session_id})
    if actor.id not in (mentor_session.mentor_id, mentor_session.learner_id) and not actor.is_admin:
        raise ForbiddenException("Not authorized to view this session")
    return mentor_session


async def list_sessions(
    session: AsyncSession,
    actor: User,
    status: Optional[str] = None,
    timeframe: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    limit = limit or settings.default_page_size
    if page < 1 or limit < 1 or limit > settings.max_page_size:
        raise ValidationException(
            "Invalid pagination",
            details={"page": page, "limit": limit, "max_limit": settings.max_page_size},
        )
    if timeframe is not None and timeframe not in TIMEFRAMES:
        raise ValidationException("Unknown timeframe", details={"timeframe": timeframe})

    conditions = []
    if actor.role == AccountKind.MENTOR.value:
        conditions.append(MentorSession.mentor_id == actor.id)
    elif actor.role == AccountKind.LEARNER.value:
        conditions.append(MentorSession.learner_id == actor.id)

    # "upcoming" carries its own status filter and replaces the requested one
    if status and timeframe != "upcoming":
        conditions.append(MentorSession.status == status)

    order = MentorSession.start_time.asc()
    if timeframe == "upcoming":
        conditions.append(MentorSession.start_time > now)
        conditions.append(MentorSession.status.in_(ACTIVE_STATUSES))
    elif timeframe == "past":
        conditions.append(MentorSession.start_time < now)
        order = MentorSession.start_time.desc()
    elif timeframe == "today":
        tz = settings.schedule_tz
        start_of_day = datetime.combine(now.astimezone(tz).date(), time.min, tzinfo=tz)
        conditions.append(MentorSession.start_time >= start_of_day)
        conditions.append(MentorSession.start_time < start_of_day + timedelta(days=1))

    total = (
        await session.execute(select(func.count()).select_from(MentorSession).where(*conditions))
    ).scalar_one()
    result = await session.execute(
        select(MentorSession)
        .where(*conditions)
        .order_by(order, MentorSession.id)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return {
        "sessions": result.scalars().all(),
        "total_sessions": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
    }

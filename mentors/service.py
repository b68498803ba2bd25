"""
Mentor lookups and the weekly availability form.

Weekly windows are the canonical source for booking validation. They are
compared on the wall clock of the configured schedule timezone, which is
also the clock the dated slots in ``availability`` are written in.
"""
import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bookings.conflicts import overlaps
from bookings.models import ACTIVE_STATUSES, MentorSession
from config import settings
from exceptions import NotFoundException
from mentors.models import AvailabilityWindow, MentorProfile

logger = logging.getLogger(__name__)


def to_schedule_clock(value: datetime) -> datetime:
    """Express an instant on the schedule wall clock; naive values are taken as already on it."""
    tz = settings.schedule_tz
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def day_of_week(d: date) -> int:
    # Python: Mon=0, Sun=6. Windows use 0=Sunday.
    return (d.weekday() + 1) % 7


def covers(windows: Iterable[AvailabilityWindow], start: datetime, end: datetime) -> bool:
    """True if ``[start, end)`` sits entirely inside one window for its weekday."""
    start_local = to_schedule_clock(start)
    end_local = to_schedule_clock(end)
    if end_local.date() != start_local.date():
        return False
    dow = day_of_week(start_local.date())
    start_hm = start_local.time().replace(tzinfo=None)
    end_hm = end_local.time().replace(tzinfo=None)
    return any(
        w.day_of_week == dow and w.start_time <= start_hm and end_hm <= w.end_time
        for w in windows
    )


async def get_mentor(session: AsyncSession, mentor_id: uuid.UUID, for_update: bool = False) -> MentorProfile:
    query = select(MentorProfile).where(MentorProfile.user_id == mentor_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    mentor = result.scalar_one_or_none()
    if not mentor:
        raise NotFoundException("Mentor not found", details={"mentor_id": str(mentor_id)})
    return mentor


async def get_weekly_availability(session: AsyncSession, mentor_id: uuid.UUID) -> Sequence[AvailabilityWindow]:
    await get_mentor(session, mentor_id)
    result = await session.execute(
        select(AvailabilityWindow)
        .where(AvailabilityWindow.mentor_id == mentor_id)
        .order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
    )
    return result.scalars().all()


async def manage_availability(
    session: AsyncSession, mentor_id: uuid.UUID, windows: Iterable[dict]
) -> Sequence[AvailabilityWindow]:
    """Replace every weekly window of a mentor."""
    await get_mentor(session, mentor_id)
    await session.execute(delete(AvailabilityWindow).where(AvailabilityWindow.mentor_id == mentor_id))
    new_windows = [AvailabilityWindow(mentor_id=mentor_id, **w) for w in windows]
    session.add_all(new_windows)
    await session.commit()
    logger.info(
        "weekly availability replaced",
        extra={"mentor_id": str(mentor_id), "windows": len(new_windows)},
    )
    return await get_weekly_availability(session, mentor_id)


async def get_bookable_slots(session: AsyncSession, mentor_id: uuid.UUID, on: date) -> list[dict]:
    """Cut the weekly windows for ``on`` into fixed-length slots and flag the free ones."""
    mentor = await get_mentor(session, mentor_id)
    tz = settings.schedule_tz

    patterns_result = await session.execute(
        select(AvailabilityWindow).where(
            AvailabilityWindow.mentor_id == mentor_id,
            AvailabilityWindow.day_of_week == day_of_week(on),
        )
    )
    patterns = patterns_result.scalars().all()

    start_of_day = datetime.combine(on, time.min, tzinfo=tz)
    end_of_day = start_of_day + timedelta(days=1)
    sessions_result = await session.execute(
        select(MentorSession).where(
            MentorSession.mentor_id == mentor_id,
            MentorSession.status.in_(ACTIVE_STATUSES),
            MentorSession.start_time < end_of_day,
            MentorSession.end_time > start_of_day,
        )
    )
    booked = sessions_result.scalars().all()

    slots = []
    duration = timedelta(minutes=mentor.session_duration_minutes)
    for pattern in sorted(patterns, key=lambda p: p.start_time):
        current = datetime.combine(on, pattern.start_time, tzinfo=tz)
        pattern_end = datetime.combine(on, pattern.end_time, tzinfo=tz)
        while current + duration <= pattern_end:
            slot_end = current + duration
            available = not any(overlaps(current, slot_end, s.start_time, s.end_time) for s in booked)
            slots.append(
                {
                    "start_time": current,
                    "end_time": slot_end,
                    "available": available,
                    "window_id": pattern.id,
                }
            )
            current = slot_end
    return slots

"""
Dated, slot-granular availability.

Independent of the weekly windows on the mentor profile: booking validates
against the weekly form, while search and slot status use this store. A
slot's booked state is never stored; it is read off the session the slot
references (see ``TimeSlot.is_booked``).
"""
import datetime as dt
import logging
import uuid
from collections import OrderedDict
from typing import Iterable, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from availability.models import AvailabilityDate, AvailabilityRecord, TimeSlot
from bookings.models import ACTIVE_STATUSES, MentorSession
from exceptions import ConflictException, NotFoundException, ValidationException
from locks import mentor_lock, retry_on_contention
from mentors.models import MentorProfile
from mentors.service import get_mentor, to_schedule_clock
from users.models import User

logger = logging.getLogger(__name__)


async def _get_record(session: AsyncSession, mentor_id: uuid.UUID) -> Optional[AvailabilityRecord]:
    result = await session.execute(
        select(AvailabilityRecord)
        .where(AvailabilityRecord.mentor_id == mentor_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _build_date(on: dt.date, time_slots: Iterable[dict]) -> AvailabilityDate:
    return AvailabilityDate(date=on, time_slots=[TimeSlot(**slot) for slot in time_slots])


async def get_record(session: AsyncSession, mentor_id: uuid.UUID) -> Optional[AvailabilityRecord]:
    await get_mentor(session, mentor_id)
    return await _get_record(session, mentor_id)


async def get_availability(
    session: AsyncSession,
    mentor_id: uuid.UUID,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> Sequence[AvailabilityDate]:
    """Dated slots for a mentor, optionally limited to an inclusive date range."""
    await get_mentor(session, mentor_id)
    if start_date and end_date and end_date < start_date:
        raise ValidationException(
            "end_date must not be before start_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    query = (
        select(AvailabilityDate)
        .join(AvailabilityRecord, AvailabilityDate.record_id == AvailabilityRecord.id)
        .where(
            AvailabilityRecord.mentor_id == mentor_id,
            AvailabilityRecord.is_active.is_(True),
        )
    )
    if start_date:
        query = query.where(AvailabilityDate.date >= start_date)
    if end_date:
        query = query.where(AvailabilityDate.date <= end_date)
    result = await session.execute(query.order_by(AvailabilityDate.date, AvailabilityDate.id))
    return result.scalars().all()


@retry_on_contention("availability update")
async def set_availability(
    session: AsyncSession,
    mentor_id: uuid.UUID,
    dates: Iterable[dict],
    recurrence_rule: Optional[str] = None,
    is_active: bool = True,
) -> AvailabilityRecord:
    """Replace the whole dated collection, creating the record on first use."""
    await get_mentor(session, mentor_id)
    dates = list(dates)

    async with mentor_lock(mentor_id):
        new_dates = [_build_date(d["date"], d["time_slots"]) for d in dates]
        record = await _get_record(session, mentor_id)
        if record is None:
            record = AvailabilityRecord(
                mentor_id=mentor_id,
                recurrence_rule=recurrence_rule,
                is_active=is_active,
                availability_dates=new_dates,
            )
            session.add(record)
        else:
            record.availability_dates = new_dates
            if recurrence_rule:
                record.recurrence_rule = recurrence_rule
            record.is_active = is_active

        await session.commit()
        record = await _get_record(session, mentor_id)

    logger.info(
        "dated availability set",
        extra={"mentor_id": str(mentor_id), "dates": len(new_dates), "is_active": is_active},
    )
    return record


@retry_on_contention("availability update")
async def add_date(
    session: AsyncSession, mentor_id: uuid.UUID, on: dt.date, time_slots: Iterable[dict]
) -> AvailabilityRecord:
    """Append slots to the entry for ``on``, or create that entry."""
    await get_mentor(session, mentor_id)
    time_slots = list(time_slots)
    if not time_slots:
        raise ValidationException("Date and time slots are required")

    async with mentor_lock(mentor_id):
        record = await _get_record(session, mentor_id)
        if record is None:
            record = AvailabilityRecord(mentor_id=mentor_id, availability_dates=[_build_date(on, time_slots)])
            session.add(record)
        else:
            existing = next((d for d in record.availability_dates if d.date == on), None)
            if existing is not None:
                existing.time_slots.extend(TimeSlot(**slot) for slot in time_slots)
            else:
                record.availability_dates.append(_build_date(on, time_slots))

        await session.commit()
        return await _get_record(session, mentor_id)


@retry_on_contention("availability update")
async def remove_date(
    session: AsyncSession, mentor_id: uuid.UUID, date_id: int
) -> Optional[AvailabilityRecord]:
    """Drop a date entry by id; absent entries are left alone."""
    await get_mentor(session, mentor_id)
    async with mentor_lock(mentor_id):
        record = await _get_record(session, mentor_id)
        if record is None:
            return None

        target = next((d for d in record.availability_dates if d.id == date_id), None)
        if target is not None:
            record.availability_dates.remove(target)
            await session.commit()
            record = await _get_record(session, mentor_id)
        return record


def _slot_matches(slot: TimeSlot, on: dt.date, booked: MentorSession) -> bool:
    start = to_schedule_clock(booked.start_time)
    end = to_schedule_clock(booked.end_time)
    return (
        start.date() == on
        and start.time().replace(tzinfo=None) == slot.start_time
        and end.time().replace(tzinfo=None) == slot.end_time
    )


@retry_on_contention("slot status update")
async def update_slot_status(
    session: AsyncSession,
    mentor_id: uuid.UUID,
    date_id: int,
    slot_id: int,
    is_booked: bool,
    session_id: Optional[int] = None,
) -> TimeSlot:
    """
    Point a slot at a live session, or release it.

    Marking a slot booked requires the session that occupies it: same
    mentor, still pending/confirmed, and the same date and start/end times
    on the schedule clock.
    """
    async with mentor_lock(mentor_id):
        record = await _get_record(session, mentor_id)
        if record is None:
            raise NotFoundException("Mentor availability not found", details={"mentor_id": str(mentor_id)})
        availability_date = next((d for d in record.availability_dates if d.id == date_id), None)
        if availability_date is None:
            raise NotFoundException("Availability date not found", details={"date_id": date_id})
        slot = next((s for s in availability_date.time_slots if s.id == slot_id), None)
        if slot is None:
            raise NotFoundException("Time slot not found", details={"slot_id": slot_id})

        if not is_booked:
            slot.session = None
        else:
            if session_id is None:
                raise ValidationException("session_id is required to mark a slot as booked")
            booked = await session.get(MentorSession, session_id)
            if booked is None:
                raise NotFoundException("Session not found", details={"session_id": session_id})
            if booked.mentor_id != mentor_id or not booked.is_active:
                raise ValidationException(
                    "Slot can only reference a live session of the same mentor",
                    details={"session_id": session_id, "status": booked.status},
                )
            if not _slot_matches(slot, availability_date.date, booked):
                raise ValidationException(
                    "Session interval does not match the time slot",
                    details={"session_id": session_id, "slot_id": slot_id},
                )
            if slot.is_booked and slot.session_id != session_id:
                raise ConflictException(
                    "Time slot is already booked",
                    details={"slot_id": slot_id, "session_id": slot.session_id},
                )
            slot.session = booked

        await session.commit()

    logger.info(
        "time slot updated",
        extra={"mentor_id": str(mentor_id), "slot_id": slot_id, "is_booked": slot.is_booked},
    )
    return slot


async def find_available_mentors(
    session: AsyncSession,
    on: dt.date,
    start_time: Optional[dt.time] = None,
    end_time: Optional[dt.time] = None,
    skills: Optional[Sequence[str]] = None,
) -> list[dict]:
    """Bookable mentors with an unbooked slot on ``on`` covering the requested window."""
    if (start_time is None) != (end_time is None):
        raise ValidationException("start_time and end_time must be given together")
    if start_time is not None and end_time <= start_time:
        raise ValidationException("end_time must be after start_time")

    query = (
        select(TimeSlot, MentorProfile, User.full_name)
        .join(AvailabilityDate, TimeSlot.date_id == AvailabilityDate.id)
        .join(AvailabilityRecord, AvailabilityDate.record_id == AvailabilityRecord.id)
        .join(MentorProfile, AvailabilityRecord.mentor_id == MentorProfile.user_id)
        .join(User, MentorProfile.user_id == User.id)
        .outerjoin(MentorSession, TimeSlot.session_id == MentorSession.id)
        .where(
            AvailabilityDate.date == on,
            AvailabilityRecord.is_active.is_(True),
            MentorProfile.is_active.is_(True),
            MentorProfile.is_verified.is_(True),
            or_(TimeSlot.session_id.is_(None), MentorSession.status.notin_(ACTIVE_STATUSES)),
        )
        .order_by(MentorProfile.public_handle, TimeSlot.start_time)
    )
    if start_time is not None:
        query = query.where(TimeSlot.start_time <= start_time, TimeSlot.end_time >= end_time)

    wanted = {s.strip() for s in skills or () if s and s.strip()}
    found: "OrderedDict[uuid.UUID, dict]" = OrderedDict()
    for slot, mentor, full_name in (await session.execute(query)).all():
        if wanted and not wanted.intersection(mentor.skills or []):
            continue
        entry = found.setdefault(
            mentor.user_id,
            {
                "mentor_id": mentor.user_id,
                "public_handle": mentor.public_handle,
                "full_name": full_name,
                "skills": mentor.skills or [],
                "hourly_rate": mentor.hourly_rate,
                "average_rating": mentor.average_rating,
                "slots": [],
            },
        )
        entry["slots"].append(slot)
    return list(found.values())

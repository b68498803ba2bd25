import datetime as dt
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from availability import service
from availability.models import AvailabilityRecord
from availability.schemas import (
    AvailabilityDateCreate,
    AvailabilityDateRead,
    AvailabilityRead,
    AvailabilitySet,
    AvailableMentorRead,
    SlotStatusUpdate,
    TimeSlotRead,
)
from db import get_async_session
from exceptions import ForbiddenException
from users.dependencies import current_active_user
from users.models import User

router = APIRouter()


def _ensure_owner(user: User, mentor_id: uuid.UUID) -> None:
    if user.id != mentor_id and not user.is_admin:
        raise ForbiddenException("Only the mentor can change this availability")


def _read(mentor_id: uuid.UUID, record: Optional[AvailabilityRecord], dates=None) -> AvailabilityRead:
    if record is None:
        return AvailabilityRead(mentor_id=mentor_id)
    return AvailabilityRead(
        mentor_id=mentor_id,
        recurrence_rule=record.recurrence_rule,
        is_active=record.is_active,
        availability_dates=[
            AvailabilityDateRead.model_validate(d)
            for d in (record.availability_dates if dates is None else dates)
        ],
    )


@router.get("/search", response_model=list[AvailableMentorRead])
async def find_available_mentors(
    date: dt.date,
    start_time: Optional[dt.time] = None,
    end_time: Optional[dt.time] = None,
    skills: Optional[str] = Query(None, description="Comma separated skill names"),
    session: AsyncSession = Depends(get_async_session),
):
    skill_list = skills.split(",") if skills else None
    return await service.find_available_mentors(session, date, start_time, end_time, skill_list)


@router.get("/{mentor_id}", response_model=AvailabilityRead)
async def get_mentor_availability(
    mentor_id: uuid.UUID,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    session: AsyncSession = Depends(get_async_session),
):
    dates = await service.get_availability(session, mentor_id, start_date, end_date)
    record = await service.get_record(session, mentor_id)
    return _read(mentor_id, record, dates)


@router.post("/{mentor_id}", response_model=AvailabilityRead)
async def set_mentor_availability(
    mentor_id: uuid.UUID,
    payload: AvailabilitySet,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    _ensure_owner(user, mentor_id)
    record = await service.set_availability(
        session,
        mentor_id,
        [d.model_dump() for d in payload.availability_dates],
        payload.recurrence_rule,
        payload.is_active,
    )
    return _read(mentor_id, record)


@router.post("/{mentor_id}/dates", response_model=AvailabilityRead)
async def add_availability_date(
    mentor_id: uuid.UUID,
    payload: AvailabilityDateCreate,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    _ensure_owner(user, mentor_id)
    record = await service.add_date(
        session, mentor_id, payload.date, [s.model_dump() for s in payload.time_slots]
    )
    return _read(mentor_id, record)


@router.delete("/{mentor_id}/dates/{date_id}", response_model=AvailabilityRead)
async def remove_availability_date(
    mentor_id: uuid.UUID,
    date_id: int,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    _ensure_owner(user, mentor_id)
    record = await service.remove_date(session, mentor_id, date_id)
    return _read(mentor_id, record)


@router.patch("/{mentor_id}/dates/{date_id}/slots/{slot_id}", response_model=TimeSlotRead)
async def update_time_slot_status(
    mentor_id: uuid.UUID,
    date_id: int,
    slot_id: int,
    payload: SlotStatusUpdate,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    _ensure_owner(user, mentor_id)
    return await service.update_slot_status(
        session, mentor_id, date_id, slot_id, payload.is_booked, payload.session_id
    )

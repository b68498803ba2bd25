import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_async_session
from mentors import service
from mentors.models import MentorProfile
from mentors.schemas import (
    AvailabilityWindowRead,
    MentorProfileCreate,
    MentorProfileRead,
    MentorProfileUpdate,
    MentorVerificationUpdate,
    SlotRead,
    WeeklyAvailabilityUpdate,
)
from users.dependencies import get_current_admin, get_current_mentor
from users.models import User

router = APIRouter()


def _read(profile: MentorProfile, full_name: str | None) -> MentorProfileRead:
    response = MentorProfileRead.model_validate(profile)
    response.full_name = full_name
    return response


async def _ensure_handle_free(session: AsyncSession, handle: str) -> None:
    result = await session.execute(select(MentorProfile).where(MentorProfile.public_handle == handle))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Public handle already taken")


@router.post("/me", response_model=MentorProfileRead)
async def create_my_profile(
    profile_data: MentorProfileCreate,
    user: User = Depends(get_current_mentor),
    session: AsyncSession = Depends(get_async_session),
):
    result = await session.execute(select(MentorProfile).where(MentorProfile.user_id == user.id))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Profile already exists")

    await _ensure_handle_free(session, profile_data.public_handle)

    new_profile = MentorProfile(**profile_data.model_dump(), user_id=user.id)
    session.add(new_profile)
    await session.commit()
    await session.refresh(new_profile)
    return _read(new_profile, user.full_name)


@router.get("/me", response_model=MentorProfileRead)
async def get_my_profile(
    user: User = Depends(get_current_mentor),
    session: AsyncSession = Depends(get_async_session),
):
    profile = await service.get_mentor(session, user.id)
    return _read(profile, user.full_name)


@router.put("/me", response_model=MentorProfileRead)
async def update_my_profile(
    profile_update: MentorProfileUpdate,
    user: User = Depends(get_current_mentor),
    session: AsyncSession = Depends(get_async_session),
):
    profile = await service.get_mentor(session, user.id)
    update_data = profile_update.model_dump(exclude_unset=True)

    if "public_handle" in update_data and update_data["public_handle"] != profile.public_handle:
        await _ensure_handle_free(session, update_data["public_handle"])

    for key, value in update_data.items():
        setattr(profile, key, value)

    await session.commit()
    await session.refresh(profile)
    return _read(profile, user.full_name)


@router.put("/me/availability", response_model=list[AvailabilityWindowRead])
async def replace_my_availability(
    payload: WeeklyAvailabilityUpdate,
    user: User = Depends(get_current_mentor),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.manage_availability(
        session, user.id, [w.model_dump() for w in payload.availability]
    )


@router.get("/{mentor_id}/availability", response_model=list[AvailabilityWindowRead])
async def get_mentor_availability(
    mentor_id: uuid.UUID,
    session: AsyncSession = Depends(get_async_session),
):
    return await service.get_weekly_availability(session, mentor_id)


@router.get("/{mentor_id}/slots", response_model=list[SlotRead])
async def get_bookable_slots(
    mentor_id: uuid.UUID,
    date: date,
    session: AsyncSession = Depends(get_async_session),
):
    return await service.get_bookable_slots(session, mentor_id, date)


@router.patch("/{mentor_id}/verification", response_model=MentorProfileRead)
async def update_mentor_verification(
    mentor_id: uuid.UUID,
    payload: MentorVerificationUpdate,
    admin: User = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session),
):
    profile = await service.get_mentor(session, mentor_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    await session.commit()
    await session.refresh(profile)
    return _read(profile, None)


@router.get("/{public_handle}", response_model=MentorProfileRead)
async def get_mentor_profile(
    public_handle: str, session: AsyncSession = Depends(get_async_session)
):
    # Join with User to get the full name
    result = await session.execute(
        select(MentorProfile, User.full_name)
        .join(User, MentorProfile.user_id == User.id)
        .where(MentorProfile.public_handle == public_handle)
    )
    row = result.first()

    if not row:
        raise HTTPException(status_code=404, detail="Mentor not found")

    profile, full_name = row
    return _read(profile, full_name)

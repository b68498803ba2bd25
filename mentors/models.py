import uuid
from datetime import time

from sqlalchemy import Boolean, Float, ForeignKey, Integer, SmallInteger, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, BigIntId, PortableJSON


class MentorProfile(Base):
    __tablename__ = "mentor_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), primary_key=True)
    public_handle: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    specialty: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    skills: Mapped[list[str]] = mapped_column(PortableJSON, default=list, nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    session_duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)

    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sessions_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Rating aggregate, written only by reviews.ratings
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user = relationship("User", backref="mentor_profile")
    availability_windows = relationship(
        "AvailabilityWindow", back_populates="mentor", cascade="all, delete-orphan"
    )


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("mentor_profiles.user_id"), nullable=False, index=True
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 0=Sunday, 6=Saturday
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    mentor = relationship("MentorProfile", back_populates="availability_windows")


class ActiveSession(Base):
    """A mentor's active-session list, one row per session."""

    __tablename__ = "mentor_active_sessions"

    mentor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("mentor_profiles.user_id"), primary_key=True
    )
    session_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("sessions.id"), primary_key=True)

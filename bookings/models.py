import enum
import uuid
from datetime import datetime

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, BigIntId, PortableJSON, UTCDateTime, utcnow


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


# Statuses that hold a mentor's time
ACTIVE_STATUSES = (SessionStatus.PENDING.value, SessionStatus.CONFIRMED.value)


class MeetingType(str, enum.Enum):
    VIDEO = "video"
    AUDIO = "audio"
    IN_PERSON = "in-person"
    CHAT = "chat"


class MentorSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_mentor_start", "mentor_id", "start_time"),
        Index("ix_sessions_learner_start", "learner_id", "start_time"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    mentor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("mentor_profiles.user_id"), nullable=False)
    learner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes

    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.PENDING.value, nullable=False, index=True
    )
    meeting_type: Mapped[str] = mapped_column(String(20), default=MeetingType.VIDEO.value, nullable=False)
    meeting_link: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    mentor_time_zone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    learner_time_zone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    cancelled_by: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # {"content": str, "rating": int, "submitted_at": iso8601}
    mentor_feedback: Mapped[dict | None] = mapped_column(PortableJSON, nullable=True)
    learner_feedback: Mapped[dict | None] = mapped_column(PortableJSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    mentor = relationship("MentorProfile", backref="sessions")
    learner = relationship("User", backref="booked_sessions")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

import uuid
import datetime as dt
from datetime import datetime, time

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, BigIntId, UTCDateTime, utcnow


class AvailabilityRecord(Base):
    __tablename__ = "availability_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("mentor_profiles.user_id"), unique=True, nullable=False
    )
    recurrence_rule: Mapped[str | None] = mapped_column(String(255), nullable=True)  # RRULE text, informational
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    availability_dates = relationship(
        "AvailabilityDate",
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AvailabilityDate.date",
    )


class AvailabilityDate(Base):
    __tablename__ = "availability_dates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(ForeignKey("availability_records.id"), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)

    record = relationship("AvailabilityRecord", back_populates="availability_dates")
    time_slots = relationship(
        "TimeSlot",
        back_populates="availability_date",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TimeSlot.start_time",
    )


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date_id: Mapped[int] = mapped_column(ForeignKey("availability_dates.id"), nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    session_id: Mapped[int | None] = mapped_column(BigIntId, ForeignKey("sessions.id"), nullable=True)

    availability_date = relationship("AvailabilityDate", back_populates="time_slots")
    session = relationship("MentorSession", lazy="selectin")

    @property
    def is_booked(self) -> bool:
        # Derived: a slot is booked only while its session still holds the time
        return self.session is not None and self.session.is_active

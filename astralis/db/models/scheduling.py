"""Calendar events, availability rules and reminders."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, SmallInteger, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from astralis.db.base import Base
from astralis.db.enums import EventStatus, ReminderStatus
from astralis.utils.time_windows import utcnow


class SchedulingEvent(Base):
    """
    A calendar event owned by a user.

    Invariant: end_time > start_time (enforced in scheduling_service).
    """

    __tablename__ = "scheduling_events"
    __table_args__ = (
        Index("idx_events_user_start", "user_id", "start_time"),
        Index("idx_events_org", "organization_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_emails: Mapped[list] = mapped_column(default=list, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=EventStatus.SCHEDULED.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    reminders: Mapped[list["EventReminder"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventReminder.reminder_time",
    )


class AvailabilityRule(Base):
    """
    A recurring weekly window ("HH:MM"-"HH:MM" on day_of_week, 0=Sunday).

    Inactive rules mark periods the user is explicitly unavailable.
    """

    __tablename__ = "availability_rules"
    __table_args__ = (Index("idx_availability_user_day", "user_id", "day_of_week"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    timezone: Mapped[str] = mapped_column(String(50), default="UTC", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class EventReminder(Base):
    """A pending/sent email reminder for a scheduling event."""

    __tablename__ = "event_reminders"
    __table_args__ = (Index("idx_reminders_status_time", "status", "reminder_time"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    event_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("scheduling_events.id", ondelete="CASCADE"), nullable=False
    )
    reminder_time: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ReminderStatus.PENDING.value, nullable=False
    )
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    event: Mapped["SchedulingEvent"] = relationship(back_populates="reminders")

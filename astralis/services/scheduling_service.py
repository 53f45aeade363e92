"""Scheduling service - calendar events and their reminders."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from astralis.db.enums import EventStatus, ReminderStatus
from astralis.db.models import EventReminder, SchedulingEvent
from astralis.schemas.scheduling import EventCreate, EventUpdate
from astralis.services import reminder_service
from astralis.utils.time_windows import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Automatic reminders created for every new event
DEFAULT_REMINDER_OFFSETS = (timedelta(hours=24), timedelta(hours=1))


def _validate_times(start: datetime, end: datetime) -> None:
    if ensure_utc(end) <= ensure_utc(start):
        raise ValueError("End time must be after start time")


def _build_default_reminders(event: SchedulingEvent) -> list[EventReminder]:
    """Reminders at start-24h and start-1h, skipping ones already in the past."""
    now = utcnow()
    reminders = []
    for offset in DEFAULT_REMINDER_OFFSETS:
        reminder_time = ensure_utc(event.start_time) - offset
        if reminder_time > now:
            reminders.append(
                EventReminder(
                    reminder_time=reminder_time,
                    status=ReminderStatus.PENDING.value,
                )
            )
    return reminders


def create_event(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    data: EventCreate,
    status: EventStatus = EventStatus.SCHEDULED,
    with_default_reminders: bool = True,
) -> SchedulingEvent:
    """Create an event; raises ValueError if end <= start."""
    _validate_times(data.start_time, data.end_time)

    event = SchedulingEvent(
        organization_id=org_id,
        user_id=user_id,
        title=data.title,
        description=data.description,
        start_time=ensure_utc(data.start_time),
        end_time=ensure_utc(data.end_time),
        location=data.location,
        participant_emails=[str(e) for e in data.participant_emails],
        status=status.value,
    )
    if with_default_reminders:
        event.reminders = _build_default_reminders(event)
    db.add(event)
    db.commit()
    db.refresh(event)
    for reminder in event.reminders:
        reminder_service.schedule_reminder_job(db, org_id, reminder)
    logger.info("Event %s created with %s reminders", event.id, len(event.reminders))
    return event


def get_event(
    db: Session, org_id: UUID, event_id: UUID, user_id: UUID | None = None
) -> SchedulingEvent | None:
    query = db.query(SchedulingEvent).filter(
        SchedulingEvent.id == event_id,
        SchedulingEvent.organization_id == org_id,
    )
    if user_id:
        query = query.filter(SchedulingEvent.user_id == user_id)
    return query.first()


def list_events(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: EventStatus | None = None,
    search: str | None = None,
) -> list[SchedulingEvent]:
    """A user's events ordered by start time."""
    query = db.query(SchedulingEvent).filter(
        SchedulingEvent.organization_id == org_id,
        SchedulingEvent.user_id == user_id,
    )
    if start_date:
        query = query.filter(SchedulingEvent.start_time >= ensure_utc(start_date))
    if end_date:
        query = query.filter(SchedulingEvent.end_time <= ensure_utc(end_date))
    if status:
        query = query.filter(SchedulingEvent.status == status.value)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                SchedulingEvent.title.ilike(pattern),
                SchedulingEvent.description.ilike(pattern),
                SchedulingEvent.location.ilike(pattern),
            )
        )
    return query.order_by(SchedulingEvent.start_time.asc()).all()


def update_event(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    event_id: UUID,
    data: EventUpdate,
) -> SchedulingEvent:
    """
    Update an event owned by the user.

    Start/end are re-validated against the merged values. Moving the start
    rebuilds pending reminders.
    """
    event = get_event(db, org_id, event_id, user_id=user_id)
    if not event:
        raise ValueError("Event not found")

    updates = data.model_dump(exclude_unset=True)
    new_start = ensure_utc(updates.get("start_time") or event.start_time)
    new_end = ensure_utc(updates.get("end_time") or event.end_time)
    _validate_times(new_start, new_end)

    start_moved = new_start != ensure_utc(event.start_time)

    for field, value in updates.items():
        if field in ("start_time", "end_time"):
            continue
        if field == "status" and value is not None:
            value = EventStatus(value).value
        if field == "participant_emails" and value is not None:
            value = [str(e) for e in value]
        setattr(event, field, value)
    event.start_time = new_start
    event.end_time = new_end

    if start_moved:
        stale = [r for r in event.reminders if r.status == ReminderStatus.PENDING.value]
        reminder_service.retire_reminder_jobs(db, stale, "event rescheduled")
        event.reminders = [
            r for r in event.reminders if r.status != ReminderStatus.PENDING.value
        ] + _build_default_reminders(event)

    db.commit()
    db.refresh(event)
    if start_moved:
        for reminder in event.reminders:
            if reminder.status == ReminderStatus.PENDING.value:
                reminder_service.schedule_reminder_job(db, org_id, reminder)
    return event


def cancel_event(db: Session, org_id: UUID, user_id: UUID, event_id: UUID) -> SchedulingEvent:
    """Mark an event cancelled (keeps the row; reminders stop sending)."""
    event = get_event(db, org_id, event_id, user_id=user_id)
    if not event:
        raise ValueError("Event not found")
    event.status = EventStatus.CANCELLED.value
    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, org_id: UUID, user_id: UUID, event_id: UUID) -> None:
    """Delete an event and its reminders."""
    event = get_event(db, org_id, event_id, user_id=user_id)
    if not event:
        raise ValueError("Event not found")
    reminder_service.retire_reminder_jobs(db, list(event.reminders), "event deleted")
    db.delete(event)
    db.commit()

"""Reminder service - event reminder scheduling and delivery."""

from __future__ import annotations

import html
import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import EventStatus, JobType, LogCategory, ReminderStatus
from astralis.db.models import EventReminder, Job, SchedulingEvent, User
from astralis.services import agent_log_service, email_service, job_service
from astralis.utils.time_windows import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# A FAILED reminder is retried by its job until this many send errors
MAX_REMINDER_RETRIES = 3


class ReminderNotFoundError(LookupError):
    def __init__(self, reminder_id: UUID):
        super().__init__(f"Reminder {reminder_id} not found")


def format_time_until(delta: timedelta) -> str:
    """Human "2 days" / "1 hour" / "15 minutes" for a reminder subject."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    if total_minutes >= 24 * 60:
        value, unit = total_minutes // (24 * 60), "day"
    elif total_minutes >= 60:
        value, unit = total_minutes // 60, "hour"
    else:
        value, unit = total_minutes, "minute"
    return f"{value} {unit}{'' if value == 1 else 's'}"


def create_reminder(
    db: Session, org_id: UUID, event: SchedulingEvent, reminder_time: datetime
) -> EventReminder:
    """Persist a pending reminder and queue its delivery job."""
    reminder = EventReminder(
        event_id=event.id,
        reminder_time=ensure_utc(reminder_time),
        status=ReminderStatus.PENDING.value,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    schedule_reminder_job(db, org_id, reminder)
    return reminder


def schedule_reminder_job(db: Session, org_id: UUID, reminder: EventReminder) -> Job:
    """Queue an event_reminder job at the reminder time (deduped per reminder+time)."""
    run_at = ensure_utc(reminder.reminder_time)
    return job_service.schedule_job(
        db=db,
        org_id=org_id,
        job_type=JobType.EVENT_REMINDER,
        payload={"reminder_id": str(reminder.id)},
        run_at=run_at,
        idempotency_key=f"{_job_key_prefix(reminder.id)}{run_at.isoformat()}",
    )


def _job_key_prefix(reminder_id: UUID) -> str:
    return f"event_reminder:{reminder_id}:"


def retire_reminder_jobs(db: Session, reminders: list[EventReminder], reason: str) -> int:
    """Stop queued deliveries for reminders about to be removed. The caller commits."""
    return sum(
        job_service.retire_pending_jobs(db, _job_key_prefix(r.id), reason) for r in reminders
    )


def list_reminders(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[EventReminder]:
    """Reminders for the user's events, optionally bounded by reminder time."""
    query = (
        db.query(EventReminder)
        .join(SchedulingEvent, EventReminder.event_id == SchedulingEvent.id)
        .filter(
            SchedulingEvent.organization_id == org_id,
            SchedulingEvent.user_id == user_id,
        )
    )
    if start:
        query = query.filter(EventReminder.reminder_time >= ensure_utc(start))
    if end:
        query = query.filter(EventReminder.reminder_time <= ensure_utc(end))
    return query.order_by(EventReminder.reminder_time.asc()).all()


def _render_reminder_html(event: SchedulingEvent, time_until: str) -> str:
    start = ensure_utc(event.start_time).strftime("%A, %B %d, %Y at %H:%M UTC")
    parts = [
        f"<h2>{html.escape(event.title)}</h2>",
        f"<p>Your event starts in {time_until}.</p>",
        f"<p><strong>When:</strong> {start}</p>",
    ]
    if event.location:
        parts.append(f"<p><strong>Where:</strong> {html.escape(event.location)}</p>")
    if event.description:
        parts.append(f"<p>{html.escape(event.description)}</p>")
    return "\n".join(parts)


async def process_event_reminder(db: Session, reminder_id: UUID) -> dict:
    """
    Deliver one reminder email to the event owner.

    Raises ReminderNotFoundError for an unknown id. Reminders already
    delivered (or out of retries) are skipped. On send failure the reminder is marked FAILED and the error
    re-raised so the job retries.
    """
    reminder = db.query(EventReminder).filter(EventReminder.id == reminder_id).first()
    if not reminder:
        raise ReminderNotFoundError(reminder_id)

    retryable = (
        reminder.status == ReminderStatus.FAILED.value
        and reminder.retry_count < MAX_REMINDER_RETRIES
    )
    if reminder.status != ReminderStatus.PENDING.value and not retryable:
        logger.info("Reminder %s already %s, skipping", reminder.id, reminder.status)
        return {"skipped": True, "reason": f"status={reminder.status}"}

    event = reminder.event
    if event.status == EventStatus.CANCELLED.value:
        logger.info("Reminder %s skipped for cancelled event %s", reminder.id, event.id)
        return {"skipped": True, "reason": "event_cancelled"}

    owner = db.query(User).filter(User.id == event.user_id).first()
    if not owner:
        raise ValueError(f"Owner of event {event.id} not found")

    time_until = format_time_until(ensure_utc(event.start_time) - utcnow())
    subject = f"Reminder: {event.title} starts in {time_until}"

    try:
        result = await email_service.send_email(
            to_email=owner.email,
            subject=subject,
            html=_render_reminder_html(event, time_until),
            idempotency_key=f"reminder-{reminder.id}",
        )
    except Exception as exc:
        reminder.status = ReminderStatus.FAILED.value
        reminder.error_message = str(exc)[:1000]
        reminder.retry_count += 1
        agent_log_service.error(
            db,
            LogCategory.DELIVERY,
            "reminder_failed",
            f"Reminder for '{event.title}' failed",
            org_id=event.organization_id,
            user_id=owner.id,
            metadata={"reminder_id": str(reminder.id)},
            error=exc,
        )
        db.commit()
        raise

    reminder.status = ReminderStatus.SENT.value
    reminder.sent_at = utcnow()
    reminder.error_message = None
    agent_log_service.info(
        db,
        LogCategory.DELIVERY,
        "reminder_sent",
        subject,
        org_id=event.organization_id,
        user_id=owner.id,
        metadata={"reminder_id": str(reminder.id), "message_id": result.get("message_id")},
    )
    db.commit()
    return {"skipped": False, "subject": subject, "message_id": result.get("message_id")}

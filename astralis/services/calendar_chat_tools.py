"""Calendar chat tools exposed to the model via function calling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import EventStatus, LogCategory
from astralis.db.models import SchedulingEvent
from astralis.schemas.scheduling import EventCreate, EventUpdate
from astralis.services import (
    agent_log_service,
    availability_service,
    conflict_service,
    reminder_service,
    scheduling_service,
)
from astralis.utils.time_windows import ensure_utc, get_zone, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
CHAT_REMINDER_LEAD = timedelta(minutes=15)
PLACEHOLDER_EVENT_LENGTH = timedelta(minutes=15)
SLOT_SEARCH_HOURS = (9, 17)
DEFAULT_MAX_SLOTS = 5

# Action types accepted on the confirmation round trip
SCHEDULE_ACTIONS = {"schedule", "schedule_event"}
CANCEL_ACTIONS = {"cancel", "cancel_event"}
RESCHEDULE_ACTIONS = {"reschedule"}


@dataclass
class ChatContext:
    db: Session
    org_id: UUID
    user_id: UUID
    tz_name: str = "UTC"


@dataclass
class ToolResult:
    """
    Outcome of one tool call.

    Read-only results are fed back to the model; terminal results
    (confirmation requests, mutations, errors) end the chat turn.
    """

    message: str
    data: Any = None
    terminal: bool = False
    requires_confirmation: bool = False
    action: dict | None = None

    def to_response(self) -> dict:
        return {
            "message": self.message,
            "data": self.data,
            "requires_confirmation": self.requires_confirmation,
            "action": self.action,
        }


# =============================================================================
# Argument helpers
# =============================================================================

def _parse_datetime(value: Any, ctx: ChatContext, field_name: str) -> datetime:
    if not value:
        raise ValueError(f"{field_name} is required")
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid {field_name}: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_zone(ctx.tz_name))
    return ensure_utc(parsed)


def _parse_date(value: Any, default: date) -> date:
    if not value:
        return default
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value}")


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _event_summary(event: SchedulingEvent) -> dict:
    return {
        "id": str(event.id),
        "title": event.title,
        "start_time": ensure_utc(event.start_time).isoformat(),
        "end_time": ensure_utc(event.end_time).isoformat(),
        "location": event.location,
        "status": event.status,
    }


def _find_event(ctx: ChatContext, args: dict) -> SchedulingEvent:
    event_id = args.get("event_id")
    if event_id:
        try:
            event = scheduling_service.get_event(
                ctx.db, ctx.org_id, UUID(str(event_id)), user_id=ctx.user_id
            )
        except ValueError:
            event = None
    elif args.get("title"):
        # Nearest upcoming, non-cancelled match
        upcoming = scheduling_service.list_events(
            ctx.db, ctx.org_id, ctx.user_id, start_date=utcnow(), search=args["title"]
        )
        event = next(
            (e for e in upcoming if e.status != EventStatus.CANCELLED.value), None
        )
    else:
        event = None
    if not event:
        raise ValueError("Event not found")
    return event


# =============================================================================
# Read-only tools
# =============================================================================

def list_events(ctx: ChatContext, args: dict) -> ToolResult:
    today = utcnow().date()
    start = _parse_date(args.get("start_date"), today)
    end = _parse_date(args.get("end_date"), start + timedelta(days=7))
    events = scheduling_service.list_events(
        ctx.db,
        ctx.org_id,
        ctx.user_id,
        start_date=datetime.combine(start, time.min, tzinfo=get_zone(ctx.tz_name)),
        end_date=datetime.combine(end, time.max, tzinfo=get_zone(ctx.tz_name)),
        search=args.get("search"),
    )
    events = [e for e in events if e.status != EventStatus.CANCELLED.value]
    if not events:
        return ToolResult(message=f"You have no events between {start} and {end}.", data=[])
    return ToolResult(
        message=f"Found {len(events)} event(s) between {start} and {end}.",
        data=[_event_summary(e) for e in events],
    )


def check_availability(ctx: ChatContext, args: dict) -> ToolResult:
    start = _parse_datetime(args.get("start_time"), ctx, "start_time")
    if args.get("end_time"):
        end = _parse_datetime(args.get("end_time"), ctx, "end_time")
    else:
        end = start + timedelta(
            minutes=_positive_int(args.get("duration_minutes"), DEFAULT_DURATION_MINUTES)
        )
    if end <= start:
        raise ValueError("End time must be after start time")

    result = conflict_service.detect_conflicts(ctx.db, ctx.org_id, ctx.user_id, start, end)
    data = {
        "available": not result.has_conflict,
        "severity": result.severity,
        "conflicts": [
            {**c.to_dict(), "event_id": str(c.event_id)} for c in result.conflicts
        ],
        "availability_issues": result.availability_issues,
    }
    if not result.has_conflict:
        return ToolResult(message="You are available at that time.", data=data)
    titles = ", ".join(c.event_title for c in result.conflicts) or "; ".join(
        result.availability_issues
    )
    return ToolResult(message=f"That time conflicts with: {titles}.", data=data)


def find_time_slots(ctx: ChatContext, args: dict) -> ToolResult:
    """Weekday hourly slots between 09:00 and 17:00 without conflicts."""
    today = utcnow().date()
    start_day = _parse_date(args.get("start_date"), today)
    end_day = _parse_date(args.get("end_date"), start_day + timedelta(days=7))
    duration = timedelta(
        minutes=_positive_int(args.get("duration_minutes"), DEFAULT_DURATION_MINUTES)
    )
    max_slots = _positive_int(args.get("max_slots"), DEFAULT_MAX_SLOTS)
    zone = get_zone(ctx.tz_name)
    now = utcnow()

    slots = []
    day = start_day
    while day <= end_day and len(slots) < max_slots:
        if day.weekday() < 5:
            for hour in range(*SLOT_SEARCH_HOURS):
                slot_start = ensure_utc(datetime.combine(day, time(hour), tzinfo=zone))
                slot_end = slot_start + duration
                if slot_start <= now or slot_end > ensure_utc(
                    datetime.combine(day, time(SLOT_SEARCH_HOURS[1]), tzinfo=zone)
                ):
                    continue
                if availability_service.check_quick_conflict(
                    ctx.db, ctx.user_id, slot_start, slot_end
                ):
                    continue
                slots.append(
                    {"start_time": slot_start.isoformat(), "end_time": slot_end.isoformat()}
                )
                if len(slots) >= max_slots:
                    break
        day += timedelta(days=1)

    if not slots:
        return ToolResult(message="I couldn't find any open slots in that range.", data=[])
    return ToolResult(message=f"Found {len(slots)} open slot(s).", data=slots)


def list_reminders(ctx: ChatContext, args: dict) -> ToolResult:
    today = utcnow().date()
    start = _parse_date(args.get("start_date"), today)
    end = _parse_date(args.get("end_date"), start + timedelta(days=7))
    zone = get_zone(ctx.tz_name)
    reminders = reminder_service.list_reminders(
        ctx.db,
        ctx.org_id,
        ctx.user_id,
        start=datetime.combine(start, time.min, tzinfo=zone),
        end=datetime.combine(end, time.max, tzinfo=zone),
    )
    data = [
        {
            "id": str(r.id),
            "event_id": str(r.event_id),
            "event_title": r.event.title,
            "reminder_time": ensure_utc(r.reminder_time).isoformat(),
            "status": r.status,
        }
        for r in reminders
    ]
    if not data:
        return ToolResult(message="You have no reminders in that range.", data=[])
    return ToolResult(message=f"Found {len(data)} reminder(s).", data=data)


# =============================================================================
# Mutating tools
# =============================================================================

def schedule_event(ctx: ChatContext, args: dict) -> ToolResult:
    title = (args.get("title") or "").strip()
    if not title:
        raise ValueError("Event title is required")
    start = _parse_datetime(args.get("start_time"), ctx, "start_time")
    duration = _positive_int(args.get("duration_minutes"), DEFAULT_DURATION_MINUTES)
    data = {
        "title": title,
        "start_time": start.isoformat(),
        "duration_minutes": duration,
        "description": args.get("description"),
        "location": args.get("location"),
        "participants": args.get("participants") or [],
    }
    local_start = start.astimezone(get_zone(ctx.tz_name))
    return ToolResult(
        message=(
            f"I'll schedule \"{title}\" on {local_start.strftime('%A, %B %d at %H:%M')} "
            f"for {duration} minutes. Should I go ahead?"
        ),
        data=data,
        terminal=True,
        requires_confirmation=True,
        action={"type": "schedule", "data": data},
    )


def cancel_event(ctx: ChatContext, args: dict) -> ToolResult:
    event = _find_event(ctx, args)
    data = {"event_id": str(event.id), "title": event.title}
    return ToolResult(
        message=f"Cancel \"{event.title}\"? Please confirm.",
        data=_event_summary(event),
        terminal=True,
        requires_confirmation=True,
        action={"type": "cancel", "data": data},
    )


def set_reminder(ctx: ChatContext, args: dict) -> ToolResult:
    """
    Remind before an existing event, or create a standalone reminder.

    Standalone reminders get a 15-minute placeholder event so they show
    on the calendar.
    """
    if args.get("event_id"):
        event = _find_event(ctx, {"event_id": args["event_id"]})
        notify_before = _positive_int(args.get("notify_before"), 15)
        reminder_time = ensure_utc(event.start_time) - timedelta(minutes=notify_before)
    else:
        title = (args.get("title") or "").strip()
        if not title:
            raise ValueError("Reminder title is required")
        reminder_time = _parse_datetime(args.get("reminder_time"), ctx, "reminder_time")
        event = scheduling_service.create_event(
            ctx.db,
            ctx.org_id,
            ctx.user_id,
            EventCreate(
                title=f"Reminder: {title}",
                start_time=reminder_time,
                end_time=reminder_time + PLACEHOLDER_EVENT_LENGTH,
            ),
            with_default_reminders=False,
        )

    if reminder_time <= utcnow():
        raise ValueError("Reminder time must be in the future")

    reminder = reminder_service.create_reminder(ctx.db, ctx.org_id, event, reminder_time)
    local_time = reminder_time.astimezone(get_zone(ctx.tz_name))
    return ToolResult(
        message=f"Reminder set for {local_time.strftime('%A, %B %d at %H:%M')}.",
        data={
            "reminder_id": str(reminder.id),
            "event_id": str(event.id),
            "reminder_time": reminder_time.isoformat(),
        },
        terminal=True,
    )


# =============================================================================
# Confirmed actions
# =============================================================================

def _run_schedule(ctx: ChatContext, data: dict) -> ToolResult:
    start = _parse_datetime(data.get("start_time"), ctx, "start_time")
    duration = _positive_int(data.get("duration_minutes"), DEFAULT_DURATION_MINUTES)
    event = scheduling_service.create_event(
        ctx.db,
        ctx.org_id,
        ctx.user_id,
        EventCreate(
            title=data.get("title") or "Meeting",
            description=data.get("description"),
            location=data.get("location"),
            start_time=start,
            end_time=start + timedelta(minutes=duration),
            participant_emails=data.get("participants") or [],
        ),
        with_default_reminders=False,
    )
    reminder_time = start - CHAT_REMINDER_LEAD
    if reminder_time > utcnow():
        reminder_service.create_reminder(ctx.db, ctx.org_id, event, reminder_time)

    agent_log_service.info(
        ctx.db,
        LogCategory.SCHEDULING,
        "chat_event_scheduled",
        f"Scheduled '{event.title}' from calendar chat",
        org_id=ctx.org_id,
        user_id=ctx.user_id,
        metadata={"event_id": str(event.id)},
    )
    ctx.db.commit()
    local_start = start.astimezone(get_zone(ctx.tz_name))
    return ToolResult(
        message=f"Done! \"{event.title}\" is scheduled for {local_start.strftime('%A, %B %d at %H:%M')}.",
        data=_event_summary(event),
        terminal=True,
    )


def _run_cancel(ctx: ChatContext, data: dict) -> ToolResult:
    event = _find_event(ctx, data)
    scheduling_service.cancel_event(ctx.db, ctx.org_id, ctx.user_id, event.id)
    agent_log_service.info(
        ctx.db,
        LogCategory.SCHEDULING,
        "chat_event_cancelled",
        f"Cancelled '{event.title}' from calendar chat",
        org_id=ctx.org_id,
        user_id=ctx.user_id,
        metadata={"event_id": str(event.id)},
    )
    ctx.db.commit()
    return ToolResult(
        message=f"\"{event.title}\" has been cancelled.",
        data=_event_summary(event),
        terminal=True,
    )


def _run_reschedule(ctx: ChatContext, data: dict) -> ToolResult:
    event = _find_event(ctx, data)
    start = _parse_datetime(data.get("new_start_time") or data.get("start_time"), ctx, "start_time")
    current_minutes = int(
        (ensure_utc(event.end_time) - ensure_utc(event.start_time)).total_seconds() // 60
    )
    duration = _positive_int(data.get("duration_minutes"), current_minutes)
    event = scheduling_service.update_event(
        ctx.db,
        ctx.org_id,
        ctx.user_id,
        event.id,
        EventUpdate(start_time=start, end_time=start + timedelta(minutes=duration)),
    )
    local_start = start.astimezone(get_zone(ctx.tz_name))
    return ToolResult(
        message=f"\"{event.title}\" moved to {local_start.strftime('%A, %B %d at %H:%M')}.",
        data=_event_summary(event),
        terminal=True,
    )


def execute_confirmed_action(ctx: ChatContext, action: dict) -> ToolResult:
    action_type = (action or {}).get("type")
    data = (action or {}).get("data") or {}
    if action_type in SCHEDULE_ACTIONS:
        return _run_schedule(ctx, data)
    if action_type in CANCEL_ACTIONS:
        return _run_cancel(ctx, data)
    if action_type in RESCHEDULE_ACTIONS:
        return _run_reschedule(ctx, data)
    raise ValueError(f"Unsupported action: {action_type}")


ToolHandler = Callable[[ChatContext, dict], ToolResult]

TOOL_HANDLERS: dict[str, ToolHandler] = {
    "list_events": list_events,
    "check_availability": check_availability,
    "schedule_event": schedule_event,
    "find_time_slots": find_time_slots,
    "cancel_event": cancel_event,
    "set_reminder": set_reminder,
    "list_reminders": list_reminders,
}


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "list_events",
        "description": "List the user's calendar events in a date range.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_date": {"type": "string", "description": "YYYY-MM-DD, defaults to today"},
                "end_date": {"type": "string", "description": "YYYY-MM-DD, defaults to a week after start"},
                "search": {"type": "string", "description": "Text to match in title, description or location"},
            },
        },
    },
    {
        "name": "check_availability",
        "description": "Check whether the user is free for a specific time.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_time": {"type": "string", "description": "ISO 8601 datetime"},
                "end_time": {"type": "string", "description": "ISO 8601 datetime"},
                "duration_minutes": {"type": "integer"},
            },
            "required": ["start_time"],
        },
    },
    {
        "name": "schedule_event",
        "description": "Schedule a new event. The user must confirm before it is created.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "start_time": {"type": "string", "description": "ISO 8601 datetime"},
                "duration_minutes": {"type": "integer", "description": "Defaults to 60"},
                "description": {"type": "string"},
                "location": {"type": "string"},
                "participants": {"type": "array", "items": {"type": "string"}, "description": "Emails"},
            },
            "required": ["title", "start_time"],
        },
    },
    {
        "name": "find_time_slots",
        "description": "Find open weekday slots between 9am and 5pm.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_date": {"type": "string", "description": "YYYY-MM-DD"},
                "end_date": {"type": "string", "description": "YYYY-MM-DD"},
                "duration_minutes": {"type": "integer", "description": "Defaults to 60"},
                "max_slots": {"type": "integer", "description": "Defaults to 5"},
            },
        },
    },
    {
        "name": "cancel_event",
        "description": "Cancel an event by id or title. The user must confirm.",
        "parameters": {
            "type": "object",
            "properties": {
                "event_id": {"type": "string"},
                "title": {"type": "string"},
            },
        },
    },
    {
        "name": "set_reminder",
        "description": "Set a reminder before an event, or a standalone reminder at a time.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "reminder_time": {"type": "string", "description": "ISO 8601 datetime"},
                "event_id": {"type": "string"},
                "notify_before": {"type": "integer", "description": "Minutes before the event"},
            },
        },
    },
    {
        "name": "list_reminders",
        "description": "List reminders in a date range.",
        "parameters": {
            "type": "object",
            "properties": {
                "start_date": {"type": "string", "description": "YYYY-MM-DD"},
                "end_date": {"type": "string", "description": "YYYY-MM-DD"},
            },
        },
    },
]

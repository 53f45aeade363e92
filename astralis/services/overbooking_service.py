"""Overbooking analysis for a single calendar day."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import BLOCKING_EVENT_STATUSES
from astralis.db.models import SchedulingEvent, User
from astralis.utils.time_windows import ensure_utc, local_day_bounds, round_half_up

WORKDAY_HOURS = 8
OVERBOOKED_PERCENTAGE = 75
MODERATE_PERCENTAGE = 50
OVERBOOKED_EVENT_COUNT = 6


def analyze_overbooking(db: Session, user_id: UUID, day: date) -> dict:
    """Booked hours vs an 8h workday for events lying fully within the user's local `day`."""
    user = db.get(User, user_id)
    day_start, day_end = local_day_bounds(day, user.timezone if user else None)
    events = (
        db.query(SchedulingEvent)
        .filter(
            SchedulingEvent.user_id == user_id,
            SchedulingEvent.status.in_(BLOCKING_EVENT_STATUSES),
            SchedulingEvent.start_time >= day_start,
            SchedulingEvent.end_time <= day_end,
        )
        .all()
    )

    hours = sum(
        (ensure_utc(e.end_time) - ensure_utc(e.start_time)).total_seconds() / 3600
        for e in events
    )
    count = len(events)
    percentage = hours / WORKDAY_HOURS * 100
    is_overbooked = percentage >= OVERBOOKED_PERCENTAGE or count >= OVERBOOKED_EVENT_COUNT

    if is_overbooked:
        message = (
            f"Warning: This date appears heavily booked ({count} events, "
            f"{hours:.1f} hours scheduled, {percentage:.0f}% of workday)."
        )
    elif percentage >= MODERATE_PERCENTAGE:
        message = (
            f"Note: This date is moderately booked ({count} events, "
            f"{hours:.1f} hours scheduled)."
        )
    else:
        message = (
            f"This date has good availability ({count} events, "
            f"{hours:.1f} hours scheduled)."
        )

    return {
        "is_overbooked": is_overbooked,
        "event_count": count,
        "total_hours": round_half_up(hours, 1),
        "percentage_booked": int(round_half_up(percentage)),
        "message": message,
    }

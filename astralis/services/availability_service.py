"""Availability service - weekly availability rules and free-time blocks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import BLOCKING_EVENT_STATUSES
from astralis.db.models import AvailabilityRule, Membership, SchedulingEvent, User
from astralis.schemas.scheduling import AvailabilityRuleCreate, AvailabilityRuleUpdate
from astralis.utils.time_windows import (
    DAY_NAMES,
    day_of_week,
    ensure_utc,
    format_hhmm,
    local_date,
    local_day_bounds,
    minutes_between,
    parse_hhmm,
    round_half_up,
    wall_clock,
)

logger = logging.getLogger(__name__)

MAX_BLOCK_RANGE_DAYS = 30
MIN_BLOCK_MINUTES = 15


class AvailabilityServiceError(Exception):
    """Base exception for availability rule errors."""


class RuleNotFoundError(AvailabilityServiceError):
    def __init__(self):
        super().__init__("Availability rule not found")


class RuleOwnershipError(AvailabilityServiceError):
    def __init__(self):
        super().__init__("Unauthorized: You do not own this availability rule")


@dataclass
class TimeWindow:
    """A concrete UTC window produced by a rule on a specific date."""

    start: datetime
    end: datetime
    is_active: bool
    rule_id: UUID | None = None

    @property
    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


# =============================================================================
# Rule CRUD
# =============================================================================

def create_rule(
    db: Session, org_id: UUID, user_id: UUID, data: AvailabilityRuleCreate
) -> AvailabilityRule:
    rule = AvailabilityRule(
        organization_id=org_id,
        user_id=user_id,
        day_of_week=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        is_active=data.is_active,
        timezone=data.timezone,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def list_rules(
    db: Session,
    user_id: UUID,
    day: int | None = None,
    active_only: bool = False,
) -> list[AvailabilityRule]:
    query = db.query(AvailabilityRule).filter(AvailabilityRule.user_id == user_id)
    if day is not None:
        query = query.filter(AvailabilityRule.day_of_week == day)
    if active_only:
        query = query.filter(AvailabilityRule.is_active.is_(True))
    return query.order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time).all()


def get_owned_rule(db: Session, rule_id: UUID, user_id: UUID) -> AvailabilityRule:
    """Fetch a rule, checking it exists and belongs to user_id."""
    rule = db.query(AvailabilityRule).filter(AvailabilityRule.id == rule_id).first()
    if not rule:
        raise RuleNotFoundError()
    if rule.user_id != user_id:
        raise RuleOwnershipError()
    return rule


def update_rule(
    db: Session, rule_id: UUID, user_id: UUID, data: AvailabilityRuleUpdate
) -> AvailabilityRule:
    rule = get_owned_rule(db, rule_id, user_id)
    updates = data.model_dump(exclude_unset=True)

    start = updates.get("start_time") or rule.start_time
    end = updates.get("end_time") or rule.end_time
    if parse_hhmm(start) >= parse_hhmm(end):
        raise ValueError("Start time must be before end time")

    for field, value in updates.items():
        if value is not None:
            setattr(rule, field, value)
    db.commit()
    db.refresh(rule)
    return rule


def delete_rule(db: Session, rule_id: UUID, user_id: UUID) -> None:
    rule = get_owned_rule(db, rule_id, user_id)
    db.delete(rule)
    db.commit()


# =============================================================================
# Windows
# =============================================================================

def _rule_window(rule: AvailabilityRule, day: date) -> TimeWindow:
    return TimeWindow(
        start=wall_clock(day, rule.start_time, rule.timezone),
        end=wall_clock(day, rule.end_time, rule.timezone),
        is_active=rule.is_active,
        rule_id=rule.id,
    )


def get_day_windows(
    db: Session, user_id: UUID, day: date, include_inactive: bool = False
) -> list[TimeWindow]:
    """Windows the user's rules produce on local date `day` (each rule in its own zone)."""
    rules = list_rules(db, user_id, day=day_of_week(day), active_only=not include_inactive)
    return sorted((_rule_window(rule, day) for rule in rules), key=lambda w: w.start)


def windows_at(rules: list[AvailabilityRule], moment: datetime) -> list[TimeWindow]:
    """
    Windows of the rules covering the local day `moment` falls on.

    The weekday is taken in each rule's timezone, so 09:00 Tuesday in
    Sydney (Monday 23:00 UTC) is matched against Tuesday rules.
    """
    windows = []
    for rule in rules:
        day = local_date(moment, rule.timezone)
        if day_of_week(day) == rule.day_of_week:
            windows.append(_rule_window(rule, day))
    return sorted(windows, key=lambda w: w.start)


def get_windows_at(
    db: Session, user_id: UUID, moment: datetime, include_inactive: bool = False
) -> list[TimeWindow]:
    return windows_at(list_rules(db, user_id, active_only=not include_inactive), moment)


def get_user_availability(db: Session, user_id: UUID, day: date) -> list[TimeWindow]:
    """Active availability windows for a date."""
    return get_day_windows(db, user_id, day)


def user_has_rules(db: Session, user_id: UUID) -> bool:
    return (
        db.query(AvailabilityRule.id).filter(AvailabilityRule.user_id == user_id).first()
        is not None
    )


def get_blocking_events(
    db: Session, user_id: UUID, start: datetime, end: datetime
) -> list[SchedulingEvent]:
    """SCHEDULED/CONFIRMED events strictly overlapping [start, end), by start."""
    return (
        db.query(SchedulingEvent)
        .filter(
            SchedulingEvent.user_id == user_id,
            SchedulingEvent.status.in_(BLOCKING_EVENT_STATUSES),
            SchedulingEvent.start_time < ensure_utc(end),
            SchedulingEvent.end_time > ensure_utc(start),
        )
        .order_by(SchedulingEvent.start_time.asc())
        .all()
    )


def check_quick_conflict(db: Session, user_id: UUID, start: datetime, end: datetime) -> bool:
    """True if any blocking event overlaps the window."""
    return bool(get_blocking_events(db, user_id, start, end))


# =============================================================================
# Free blocks
# =============================================================================

def _subtract_busy(
    window_start: datetime,
    window_end: datetime,
    busy: list[tuple[datetime, datetime]],
) -> list[tuple[datetime, datetime]]:
    """Carve busy intervals (sorted by start) out of one window."""
    free = []
    cursor = window_start
    for busy_start, busy_end in busy:
        if busy_end <= cursor or busy_start >= window_end:
            continue
        if busy_start > cursor:
            free.append((cursor, busy_start))
        cursor = max(cursor, busy_end)
        if cursor >= window_end:
            break
    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def _user_timezone(db: Session, org_id: UUID, user_id: UUID) -> str | None:
    user = (
        db.query(User)
        .join(Membership, Membership.user_id == User.id)
        .filter(User.id == user_id, Membership.organization_id == org_id)
        .first()
    )
    if user is None:
        raise ValueError("User not found in organization")
    return user.timezone


def _day_availability(db: Session, user_id: UUID, day: date, tz_name: str | None) -> dict:
    windows = get_user_availability(db, user_id, day)
    blocks = []
    event_count = 0
    if windows:
        day_start, day_end = local_day_bounds(day, tz_name)
        span_start = min([day_start] + [w.start for w in windows])
        span_end = max([day_end] + [w.end for w in windows])
        events = get_blocking_events(db, user_id, span_start, span_end)
        busy = [(ensure_utc(e.start_time), ensure_utc(e.end_time)) for e in events]
        event_count = sum(1 for start, end in busy if start < day_end and end > day_start)

        for window in windows:
            for free_start, free_end in _subtract_busy(window.start, window.end, busy):
                duration = minutes_between(free_start, free_end)
                if duration >= MIN_BLOCK_MINUTES:
                    blocks.append(
                        {
                            "date": day.isoformat(),
                            "start": free_start,
                            "end": free_end,
                            "duration_minutes": duration,
                        }
                    )

    return {
        "date": day.isoformat(),
        "day_of_week": DAY_NAMES[day_of_week(day)],
        "available_blocks": blocks,
        "total_available_minutes": sum(b["duration_minutes"] for b in blocks),
        # Days without rules report no events, matching their empty blocks
        "scheduled_events": event_count,
    }


def get_availability_blocks(
    db: Session, org_id: UUID, user_id: UUID, start_date: date, end_date: date
) -> dict:
    """
    Free blocks per day between start_date and end_date (inclusive).

    Days are the user's local days. Free time is active rule windows minus
    blocking events; blocks shorter than MIN_BLOCK_MINUTES are dropped.
    """
    if end_date < start_date:
        raise ValueError("End date must be after or equal to start date.")
    if (end_date - start_date).days > MAX_BLOCK_RANGE_DAYS:
        raise ValueError(f"Date range cannot exceed {MAX_BLOCK_RANGE_DAYS} days.")

    tz_name = _user_timezone(db, org_id, user_id)
    days = []
    day = start_date
    while day <= end_date:
        days.append(_day_availability(db, user_id, day, tz_name))
        day += timedelta(days=1)

    total_minutes = sum(d["total_available_minutes"] for d in days)
    return {
        "availability": days,
        "summary": {
            "total_days": len(days),
            "total_available_minutes": total_minutes,
            "total_available_hours": round_half_up(total_minutes / 60, 1),
            "total_scheduled_events": sum(d["scheduled_events"] for d in days),
            "average_available_minutes_per_day": int(round_half_up(total_minutes / len(days))),
        },
    }

"""Interval and wall-clock helpers shared by the scheduling services."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "UTC"

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    """Parse a 24h "HH:MM" string. Raises ValueError on bad input."""
    match = _HHMM_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time format '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(value: datetime | time) -> str:
    return value.strftime("%H:%M")


def get_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def day_of_week(day: date) -> int:
    """Day index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def local_day_bounds(day: date, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """UTC [start, end) of `day` as lived in the given timezone."""
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str | None = None) -> date:
    return ensure_utc(moment).astimezone(get_zone(tz_name)).date()


def wall_clock(day: date, hhmm: str, tz_name: str | None = None) -> datetime:
    """Build an aware UTC datetime for HH:MM on `day` in the given timezone."""
    local = datetime.combine(day, parse_hhmm(hhmm), tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Strict overlap of half-open intervals."""
    return a_start < b_end and a_end > b_start


def contains(outer_start: datetime, outer_end: datetime, inner_start: datetime, inner_end: datetime) -> bool:
    return outer_start <= inner_start and inner_end <= outer_end


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up: 30.5 -> 31, 0.25 at one digit -> 0.3."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))

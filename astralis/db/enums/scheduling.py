"""Scheduling enums."""

from enum import Enum


class EventStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    CONFLICT = "CONFLICT"


# Statuses that occupy time on a calendar
BLOCKING_EVENT_STATUSES = (EventStatus.SCHEDULED.value, EventStatus.CONFIRMED.value)


class ReminderStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class ConflictType(str, Enum):
    FULL_OVERLAP = "full_overlap"
    PARTIAL_OVERLAP = "partial_overlap"
    BACK_TO_BACK = "back_to_back"


class ConflictSeverity(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PreferredTime(str, Enum):
    """Named parts of the day used for slot suggestion."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

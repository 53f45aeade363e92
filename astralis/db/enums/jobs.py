"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    EVENT_REMINDER = "event_reminder"
    NOTIFICATION = "notification"
    INTAKE_ROUTING = "intake_routing"
    LOG_CLEANUP = "log_cleanup"


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

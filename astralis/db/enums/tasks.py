"""Task enums."""

from enum import Enum


class TaskSource(str, Enum):
    FORM = "FORM"
    EMAIL = "EMAIL"
    CHAT = "CHAT"
    API = "API"
    CALL = "CALL"


class TaskType(str, Enum):
    """What an inbound request is asking for."""

    SCHEDULE_MEETING = "SCHEDULE_MEETING"
    RESCHEDULE_MEETING = "RESCHEDULE_MEETING"
    CANCEL_MEETING = "CANCEL_MEETING"
    CHECK_AVAILABILITY = "CHECK_AVAILABILITY"
    CREATE_TASK = "CREATE_TASK"
    UPDATE_TASK = "UPDATE_TASK"
    INQUIRY = "INQUIRY"
    UNKNOWN = "UNKNOWN"


class TaskStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    BLOCKED = "BLOCKED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


TASK_STATUS_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.NEW: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.NEEDS_REVIEW,
        TaskStatus.BLOCKED,
        TaskStatus.DONE,
        TaskStatus.CANCELLED,
    },
    TaskStatus.IN_PROGRESS: {
        TaskStatus.NEEDS_REVIEW,
        TaskStatus.BLOCKED,
        TaskStatus.DONE,
        TaskStatus.CANCELLED,
    },
    TaskStatus.NEEDS_REVIEW: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.DONE,
        TaskStatus.CANCELLED,
    },
    TaskStatus.BLOCKED: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.DONE: set(),
    TaskStatus.CANCELLED: set(),
}

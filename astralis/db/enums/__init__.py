"""Enum definitions for application constants."""

from astralis.db.enums.agent import (
    DecisionStatus,
    DecisionType,
    InputSource,
    LogCategory,
    LogLevel,
    REVIEWABLE_DECISION_STATUSES,
)
from astralis.db.enums.auth import ROLES_CAN_REVIEW_DECISIONS, Role
from astralis.db.enums.documents import DocumentStatus
from astralis.db.enums.intake import IntakeCategory, IntakeSource, IntakeStatus
from astralis.db.enums.jobs import JobStatus, JobType
from astralis.db.enums.pipelines import PipelineItemStatus
from astralis.db.enums.scheduling import (
    BLOCKING_EVENT_STATUSES,
    ConflictSeverity,
    ConflictType,
    EventStatus,
    PreferredTime,
    ReminderStatus,
)
from astralis.db.enums.tasks import TASK_STATUS_TRANSITIONS, TaskSource, TaskStatus, TaskType

__all__ = [
    "BLOCKING_EVENT_STATUSES",
    "ConflictSeverity",
    "ConflictType",
    "DecisionStatus",
    "DecisionType",
    "DocumentStatus",
    "EventStatus",
    "InputSource",
    "IntakeCategory",
    "IntakeSource",
    "IntakeStatus",
    "JobStatus",
    "JobType",
    "LogCategory",
    "LogLevel",
    "PipelineItemStatus",
    "PreferredTime",
    "REVIEWABLE_DECISION_STATUSES",
    "ROLES_CAN_REVIEW_DECISIONS",
    "ReminderStatus",
    "Role",
    "TASK_STATUS_TRANSITIONS",
    "TaskSource",
    "TaskStatus",
    "TaskType",
]

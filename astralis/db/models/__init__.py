"""SQLAlchemy ORM models."""

from astralis.db.models.agent import AgentDecision, AgentLog
from astralis.db.models.auth import Membership, Organization, User
from astralis.db.models.documents import Document
from astralis.db.models.intake import IntakeRequest
from astralis.db.models.jobs import Job
from astralis.db.models.pipelines import Pipeline, PipelineItem, PipelineStage
from astralis.db.models.scheduling import AvailabilityRule, EventReminder, SchedulingEvent
from astralis.db.models.tasks import Task

__all__ = [
    "AgentDecision",
    "AgentLog",
    "AvailabilityRule",
    "Document",
    "EventReminder",
    "IntakeRequest",
    "Job",
    "Membership",
    "Organization",
    "Pipeline",
    "PipelineItem",
    "PipelineStage",
    "SchedulingEvent",
    "Task",
    "User",
]

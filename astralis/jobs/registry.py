"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from astralis.db.enums import JobType
from astralis.jobs.handlers import intake_routing, maintenance, notifications, reminders

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.EVENT_REMINDER.value: reminders.process_event_reminder_job,
    JobType.NOTIFICATION.value: notifications.process_notification,
    JobType.INTAKE_ROUTING.value: intake_routing.process_intake_routing,
    JobType.LOG_CLEANUP.value: maintenance.process_log_cleanup,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler

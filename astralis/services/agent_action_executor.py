"""Agent action executor framework.

Runs the actions attached to an approved agent decision. Each action is a
dict {type, priority, params}; each type has an executor that validates
and performs the work.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from astralis.db.enums import EventStatus, JobType, LogCategory, TaskSource
from astralis.db.models import IntakeRequest
from astralis.schemas.scheduling import EventCreate, EventUpdate
from astralis.schemas.task import TaskCreate
from astralis.services import (
    agent_log_service,
    intake_service,
    job_service,
    scheduling_service,
    task_service,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Base Executor
# ============================================================================

class ActionExecutor(ABC):
    """Base class for action executors."""

    action_type: str = ""

    def validate(self, params: dict[str, Any]) -> str | None:
        """Return an error message, or None when params are usable."""
        return None

    @abstractmethod
    def execute(
        self, db: Session, org_id: uuid.UUID, user_id: uuid.UUID, params: dict[str, Any]
    ) -> dict[str, Any]:
        """Perform the action and return a result dict."""


def _uuid_param(params: dict[str, Any], key: str) -> uuid.UUID:
    value = params.get(key)
    if not value:
        raise ValueError(f"{key} is required")
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValueError(f"{key} is not a valid id") from exc


def _datetime_param(params: dict[str, Any], key: str) -> datetime | None:
    value = params.get(key)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# ============================================================================
# Action Executors
# ============================================================================

class AssignPipelineExecutor(ActionExecutor):
    """Assign an intake request to a pipeline."""

    action_type = "assign_pipeline"

    def validate(self, params: dict[str, Any]) -> str | None:
        if not params.get("intake_id") or not params.get("pipeline_id"):
            return "intake_id and pipeline_id are required"
        return None

    def execute(self, db, org_id, user_id, params):
        intake_id = _uuid_param(params, "intake_id")
        intake = intake_service.get_intake(db, org_id, intake_id)
        if not intake:
            raise ValueError("Intake request not found")
        stage_id = _uuid_param(params, "stage_id") if params.get("stage_id") else None
        intake, item = intake_service.assign_intake(
            db,
            org_id,
            intake,
            _uuid_param(params, "pipeline_id"),
            stage_id=stage_id,
            user_id=user_id,
        )
        return {
            "action": self.action_type,
            "intake_id": str(intake.id),
            "pipeline_item_id": str(item.id),
        }


class CreateEventExecutor(ActionExecutor):
    action_type = "create_event"

    def validate(self, params: dict[str, Any]) -> str | None:
        if not params.get("title"):
            return "Event title is required"
        if not params.get("start_time") or not params.get("end_time"):
            return "start_time and end_time are required"
        return None

    def execute(self, db, org_id, user_id, params):
        owner_id = _uuid_param(params, "user_id") if params.get("user_id") else user_id
        data = EventCreate(
            title=params["title"],
            description=params.get("description"),
            start_time=_datetime_param(params, "start_time"),
            end_time=_datetime_param(params, "end_time"),
            location=params.get("location"),
            participant_emails=params.get("participant_emails") or [],
        )
        event = scheduling_service.create_event(db, org_id, owner_id, data)
        return {"action": self.action_type, "event_id": str(event.id)}


class UpdateEventExecutor(ActionExecutor):
    action_type = "update_event"

    def validate(self, params: dict[str, Any]) -> str | None:
        return None if params.get("event_id") else "event_id is required"

    def execute(self, db, org_id, user_id, params):
        event = scheduling_service.get_event(db, org_id, _uuid_param(params, "event_id"))
        if not event:
            raise ValueError("Event not found")
        fields = {
            k: v
            for k, v in params.items()
            if k in ("title", "description", "location", "start_time", "end_time")
        }
        for key in ("start_time", "end_time"):
            if key in fields:
                fields[key] = _datetime_param(params, key)
        updated = scheduling_service.update_event(
            db, org_id, event.user_id, event.id, EventUpdate(**fields)
        )
        return {"action": self.action_type, "event_id": str(updated.id)}


class CancelEventExecutor(ActionExecutor):
    action_type = "cancel_event"

    def validate(self, params: dict[str, Any]) -> str | None:
        return None if params.get("event_id") else "event_id is required"

    def execute(self, db, org_id, user_id, params):
        event = scheduling_service.get_event(db, org_id, _uuid_param(params, "event_id"))
        if not event:
            raise ValueError("Event not found")
        if event.status == EventStatus.CANCELLED.value:
            return {"action": self.action_type, "event_id": str(event.id), "already_cancelled": True}
        scheduling_service.cancel_event(db, org_id, event.user_id, event.id)
        return {"action": self.action_type, "event_id": str(event.id)}


class SendNotificationExecutor(ActionExecutor):
    """Queue notification emails; the worker does the delivery."""

    action_type = "send_notification"

    def validate(self, params: dict[str, Any]) -> str | None:
        if not params.get("recipient_emails"):
            return "recipient_emails is required"
        if not params.get("subject"):
            return "subject is required"
        return None

    def execute(self, db, org_id, user_id, params):
        job_ids = []
        for email in params["recipient_emails"]:
            job = job_service.schedule_job(
                db,
                org_id,
                JobType.NOTIFICATION,
                {
                    "to_email": email,
                    "subject": params["subject"],
                    "html": params.get("body") or params["subject"],
                },
            )
            job_ids.append(str(job.id))
        return {"action": self.action_type, "job_ids": job_ids}


class CreateTaskExecutor(ActionExecutor):
    action_type = "create_task"

    def validate(self, params: dict[str, Any]) -> str | None:
        title = params.get("title")
        if not title or not str(title).strip():
            return "Task title is required"
        return None

    def execute(self, db, org_id, user_id, params):
        data = TaskCreate(
            title=params["title"],
            description=params.get("description"),
            source=TaskSource(params.get("source", TaskSource.API.value)),
            priority=params.get("priority", 3),
            pipeline_key=params.get("pipeline_key"),
            tags=params.get("tags") or [],
            data=params.get("data") or {},
        )
        task = task_service.create_task(db, org_id, user_id, data)
        return {"action": self.action_type, "task_id": str(task.id)}


class EscalateExecutor(ActionExecutor):
    """Raise a top-priority review task (and bump the intake priority when linked)."""

    action_type = "escalate"

    def execute(self, db, org_id, user_id, params):
        reason = params.get("reason") or "Escalated by agent"
        intake_id = params.get("intake_id")
        if intake_id:
            intake = (
                db.query(IntakeRequest)
                .filter(
                    IntakeRequest.id == _uuid_param(params, "intake_id"),
                    IntakeRequest.organization_id == org_id,
                )
                .first()
            )
            if intake:
                intake.priority = max(intake.priority, 10)
        task = task_service.create_task(
            db,
            org_id,
            user_id,
            TaskCreate(
                title=f"Escalation: {reason}"[:255],
                description=params.get("details"),
                priority=5,
                tags=["escalation"],
                data={"intake_id": intake_id} if intake_id else {},
            ),
        )
        agent_log_service.warn(
            db,
            LogCategory.SYSTEM,
            "escalated",
            reason,
            org_id=org_id,
            user_id=user_id,
            metadata={"task_id": str(task.id)},
        )
        db.commit()
        return {"action": self.action_type, "task_id": str(task.id)}


# ============================================================================
# Registry & Execution
# ============================================================================

EXECUTORS: dict[str, ActionExecutor] = {
    executor.action_type: executor
    for executor in (
        AssignPipelineExecutor(),
        CreateEventExecutor(),
        UpdateEventExecutor(),
        CancelEventExecutor(),
        SendNotificationExecutor(),
        CreateTaskExecutor(),
        EscalateExecutor(),
    )
}


def get_executor(action_type: str) -> ActionExecutor | None:
    """Get executor for an action type."""
    return EXECUTORS.get((action_type or "").lower())


@dataclass
class ExecutionOutcome:
    results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def execute_actions(
    db: Session, org_id: uuid.UUID, user_id: uuid.UUID, actions: list[dict[str, Any]]
) -> ExecutionOutcome:
    """
    Run actions ordered by priority (lower first).

    A failing action is recorded and the remaining actions still run.
    """
    outcome = ExecutionOutcome()
    ordered = sorted(actions, key=lambda a: a.get("priority", 0) if isinstance(a, dict) else 0)

    for action in ordered:
        action_type = action.get("type", "") if isinstance(action, dict) else ""
        params = (action.get("params") or {}) if isinstance(action, dict) else {}
        executor = get_executor(action_type)
        if executor is None:
            outcome.errors.append(f"Unknown action type: {action_type}")
            continue

        error = executor.validate(params)
        if error:
            outcome.errors.append(f"{action_type}: {error}")
            continue

        try:
            outcome.results.append(executor.execute(db, org_id, user_id, params))
        except (ValueError, intake_service.IntakeServiceError) as exc:
            db.rollback()
            logger.warning("Action %s failed: %s", action_type, exc)
            outcome.errors.append(f"{action_type}: {exc}")

    return outcome

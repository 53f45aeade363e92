"""Task service - business logic for task operations."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from astralis.db.enums import TASK_STATUS_TRANSITIONS, TaskSource, TaskStatus
from astralis.db.models import Task
from astralis.schemas.task import TaskCreate, TaskUpdate


def validate_transition(current: TaskStatus, target: TaskStatus) -> None:
    """Raise ValueError unless target is reachable from current."""
    if current == target:
        return
    if target not in TASK_STATUS_TRANSITIONS[current]:
        raise ValueError(
            f"Invalid status transition from {current.value} to {target.value}"
        )


def create_task(
    db: Session, org_id: UUID, user_id: UUID | None, data: TaskCreate
) -> Task:
    task = Task(
        organization_id=org_id,
        created_by_user_id=user_id,
        title=data.title,
        description=data.description,
        source=data.source.value,
        status=TaskStatus.NEW.value,
        priority=data.priority,
        pipeline_key=data.pipeline_key,
        stage_key=data.stage_key,
        tags=data.tags,
        data=data.data,
        assigned_to_user_id=data.assigned_to_user_id,
        due_at=data.due_at,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def get_task(db: Session, task_id: UUID, org_id: UUID) -> Task | None:
    """Get task by ID (org-scoped)."""
    return db.query(Task).filter(Task.id == task_id, Task.organization_id == org_id).first()


def list_tasks(
    db: Session,
    org_id: UUID,
    page: int = 1,
    per_page: int = 20,
    status: TaskStatus | None = None,
    source: TaskSource | None = None,
    priority: int | None = None,
    pipeline_key: str | None = None,
    assigned_to_user_id: UUID | None = None,
    q: str | None = None,
) -> tuple[list[Task], int]:
    """List tasks with filters, highest priority then newest first."""
    query = db.query(Task).filter(Task.organization_id == org_id)
    if status:
        query = query.filter(Task.status == status.value)
    if source:
        query = query.filter(Task.source == source.value)
    if priority is not None:
        query = query.filter(Task.priority == priority)
    if pipeline_key:
        query = query.filter(Task.pipeline_key == pipeline_key)
    if assigned_to_user_id:
        query = query.filter(Task.assigned_to_user_id == assigned_to_user_id)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    total = query.count()
    tasks = (
        query.order_by(Task.priority.desc(), Task.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return tasks, total


def update_task(db: Session, task: Task, data: TaskUpdate) -> Task:
    """Update a task; status changes must follow TASK_STATUS_TRANSITIONS."""
    updates = data.model_dump(exclude_unset=True)
    new_status = updates.pop("status", None)
    if new_status is not None:
        validate_transition(TaskStatus(task.status), TaskStatus(new_status))
        task.status = TaskStatus(new_status).value

    for field, value in updates.items():
        if field in ("title", "priority", "tags", "data") and value is None:
            continue
        setattr(task, field, value)

    db.commit()
    db.refresh(task)
    return task


def cancel_task(db: Session, task: Task) -> Task:
    """Soft delete: move the task to CANCELLED."""
    validate_transition(TaskStatus(task.status), TaskStatus.CANCELLED)
    task.status = TaskStatus.CANCELLED.value
    db.commit()
    db.refresh(task)
    return task

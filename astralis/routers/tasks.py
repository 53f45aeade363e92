"""Tasks router - CRUD with enforced status transitions, plus request classification."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_current_user, get_db, require_csrf_header
from astralis.db.enums import TaskSource, TaskStatus
from astralis.db.models import User
from astralis.schemas.auth import UserSession
from astralis.schemas.task import (
    TaskAnalyzeRequest,
    TaskClassification,
    TaskCreate,
    TaskListResponse,
    TaskRead,
    TaskUpdate,
)
from astralis.services import task_classification_service, task_service
from astralis.utils.time_windows import local_date, utcnow

router = APIRouter(tags=["Tasks"])


def _get_task_or_404(db: Session, task_id: UUID, org_id: UUID):
    task = task_service.get_task(db, task_id, org_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("", response_model=TaskListResponse)
def list_tasks(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    status: TaskStatus | None = None,
    source: TaskSource | None = None,
    priority: int | None = Query(None, ge=1, le=5),
    pipeline_key: str | None = None,
    assigned_to: UUID | None = None,
    q: str | None = Query(None, max_length=100),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    tasks, total = task_service.list_tasks(
        db,
        session.org_id,
        page=page,
        per_page=per_page,
        status=status,
        source=source,
        priority=priority,
        pipeline_key=pipeline_key,
        assigned_to_user_id=assigned_to,
        q=q,
    )
    return TaskListResponse(
        items=tasks,
        total=total,
        page=page,
        per_page=per_page,
        pages=(total + per_page - 1) // per_page if total else 0,
    )


@router.post(
    "",
    response_model=TaskRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_task(
    data: TaskCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return task_service.create_task(db, session.org_id, session.user_id, data)


@router.post(
    "/analyze",
    response_model=TaskClassification,
    dependencies=[Depends(require_csrf_header)],
)
async def analyze_request(data: TaskAnalyzeRequest, user: User = Depends(get_current_user)):
    """Classify free text from any intake channel without storing anything."""
    return await task_classification_service.classify_content(
        data.content, data.source, local_date(utcnow(), user.timezone)
    )


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _get_task_or_404(db, task_id, session.org_id)


@router.patch("/{task_id}", response_model=TaskRead, dependencies=[Depends(require_csrf_header)])
def update_task(
    task_id: UUID,
    data: TaskUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    task = _get_task_or_404(db, task_id, session.org_id)
    try:
        return task_service.update_task(db, task, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{task_id}", response_model=TaskRead, dependencies=[Depends(require_csrf_header)])
def delete_task(
    task_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Cancel the task (tasks are never hard-deleted)."""
    task = _get_task_or_404(db, task_id, session.org_id)
    try:
        return task_service.cancel_task(db, task)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/{task_id}/classify",
    response_model=TaskClassification,
    dependencies=[Depends(require_csrf_header)],
)
async def classify_task(
    task_id: UUID,
    session: UserSession = Depends(get_current_session),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Classify the task, store the result in its data and adopt the priority."""
    task = _get_task_or_404(db, task_id, session.org_id)
    return await task_classification_service.classify_task(db, session.org_id, task, user.timezone)

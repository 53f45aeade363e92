"""Intake service - inbound request CRUD and manual pipeline assignment."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import IntakeSource, IntakeStatus, PipelineItemStatus
from astralis.db.models import IntakeRequest, PipelineItem
from astralis.schemas.intake import IntakeCreate, IntakeUpdate
from astralis.services import pipeline_service
from astralis.utils.time_windows import utcnow

logger = logging.getLogger(__name__)

INTAKE_ITEM_TAG = "intake"


class IntakeServiceError(Exception):
    """Base exception for intake operations."""
    pass


class IntakeNotFoundError(IntakeServiceError):
    def __init__(self, what: str = "Intake request"):
        super().__init__(f"{what} not found")


class IntakeAssignmentError(IntakeServiceError):
    """Assignment target is not usable (e.g. a pipeline with no stages)."""
    pass


# =============================================================================
# CRUD
# =============================================================================

def create_intake(
    db: Session, org_id: UUID, user_id: UUID | None, data: IntakeCreate
) -> IntakeRequest:
    intake = IntakeRequest(
        organization_id=org_id,
        source=data.source.value,
        title=data.title,
        description=data.description,
        request_data=data.request_data,
        priority=data.priority,
        status=IntakeStatus.NEW.value,
        created_by_user_id=user_id,
    )
    db.add(intake)
    db.commit()
    db.refresh(intake)
    return intake


def get_intake(db: Session, org_id: UUID, intake_id: UUID) -> IntakeRequest | None:
    return (
        db.query(IntakeRequest)
        .filter(IntakeRequest.id == intake_id, IntakeRequest.organization_id == org_id)
        .first()
    )


def list_intake(
    db: Session,
    org_id: UUID,
    status: IntakeStatus | None = None,
    source: IntakeSource | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[IntakeRequest], int]:
    """List intake requests, highest priority then newest first."""
    query = db.query(IntakeRequest).filter(IntakeRequest.organization_id == org_id)
    if status:
        query = query.filter(IntakeRequest.status == status.value)
    if source:
        query = query.filter(IntakeRequest.source == source.value)
    total = query.count()
    items = (
        query.order_by(IntakeRequest.priority.desc(), IntakeRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def update_intake(db: Session, intake: IntakeRequest, data: IntakeUpdate) -> IntakeRequest:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "description":
            continue
        if field == "status":
            value = IntakeStatus(value).value
        setattr(intake, field, value)
    db.commit()
    db.refresh(intake)
    return intake


def delete_intake(db: Session, intake: IntakeRequest) -> None:
    db.delete(intake)
    db.commit()


# =============================================================================
# Assignment
# =============================================================================

def _intake_items(db: Session, intake: IntakeRequest, pipeline_id: UUID) -> list[PipelineItem]:
    items = db.query(PipelineItem).filter(PipelineItem.pipeline_id == pipeline_id).all()
    key = str(intake.id)
    return [i for i in items if (i.data or {}).get("intake_request_id") == key]


def assign_intake(
    db: Session,
    org_id: UUID,
    intake: IntakeRequest,
    pipeline_id: UUID,
    stage_id: UUID | None = None,
    user_id: UUID | None = None,
    routing_meta: dict | None = None,
) -> tuple[IntakeRequest, PipelineItem]:
    """
    Assign an intake request to a pipeline stage.

    Creates a NOT_STARTED pipeline item linked back through
    data.intake_request_id. Moving to a different pipeline removes the
    items previously created in the old one. routing_meta replaces the
    default manual_assignment record (used by automated routing).
    """
    pipeline = pipeline_service.get_pipeline(db, org_id, pipeline_id)
    if not pipeline:
        raise IntakeNotFoundError("Pipeline")

    if stage_id:
        stage = pipeline_service.get_stage(db, pipeline.id, stage_id)
        if not stage:
            raise IntakeNotFoundError("Stage")
    else:
        stage = pipeline_service.get_default_stage(db, pipeline.id)
        if not stage:
            raise IntakeAssignmentError("Pipeline has no stages")

    previous = intake.assigned_pipeline_id
    if previous and previous != pipeline.id:
        for old_item in _intake_items(db, intake, previous):
            db.delete(old_item)

    item = PipelineItem(
        pipeline_id=pipeline.id,
        stage_id=stage.id,
        title=intake.title,
        description=intake.description,
        priority=min(intake.priority, 4),
        status=PipelineItemStatus.NOT_STARTED.value,
        tags=[INTAKE_ITEM_TAG],
        data={"intake_request_id": str(intake.id)},
        created_by_user_id=user_id,
    )
    db.add(item)

    intake.assigned_pipeline_id = pipeline.id
    intake.status = IntakeStatus.ASSIGNED.value
    intake.ai_routing_meta = routing_meta or {
        "manual_assignment": {
            "assigned_by": str(user_id) if user_id else None,
            "assigned_at": utcnow().isoformat(),
            "pipeline_id": str(pipeline.id),
            "stage_id": str(stage.id),
        }
    }
    db.commit()
    db.refresh(intake)
    db.refresh(item)
    logger.info("Intake %s assigned to pipeline %s", intake.id, pipeline.id)
    return intake, item

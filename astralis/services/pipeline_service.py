"""Pipeline service - pipelines, ordered stages and pipeline items."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from astralis.db.enums import PipelineItemStatus
from astralis.db.models import Membership, Pipeline, PipelineItem, PipelineStage
from astralis.schemas.pipeline import (
    PipelineCreate,
    PipelineItemCreate,
    PipelineItemUpdate,
    PipelineUpdate,
    StageCreate,
    StageUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_STAGE_NAMES = ("New", "In Progress", "Done")


class PipelineItemAccessError(Exception):
    """Item exists but belongs to a different pipeline."""

    def __init__(self):
        super().__init__("Item does not belong to this pipeline")


# =============================================================================
# Pipelines
# =============================================================================

def get_pipeline(db: Session, org_id: UUID, pipeline_id: UUID) -> Pipeline | None:
    """Get pipeline by ID (org-scoped)."""
    return (
        db.query(Pipeline)
        .filter(Pipeline.id == pipeline_id, Pipeline.organization_id == org_id)
        .first()
    )


def list_pipelines(db: Session, org_id: UUID, active_only: bool = False) -> list[Pipeline]:
    query = db.query(Pipeline).filter(Pipeline.organization_id == org_id)
    if active_only:
        query = query.filter(Pipeline.is_active.is_(True))
    return query.order_by(Pipeline.created_at.asc(), Pipeline.name.asc()).all()


def create_pipeline(
    db: Session, org_id: UUID, user_id: UUID | None, data: PipelineCreate
) -> Pipeline:
    """Create a pipeline. Without explicit stages, New/In Progress/Done are added."""
    pipeline = Pipeline(
        organization_id=org_id,
        name=data.name,
        description=data.description,
        created_by_user_id=user_id,
    )
    stage_defs = data.stages or [StageCreate(name=name) for name in DEFAULT_STAGE_NAMES]
    pipeline.stages = [
        PipelineStage(name=s.name, order=s.order if s.order is not None else i, color=s.color)
        for i, s in enumerate(stage_defs)
    ]
    db.add(pipeline)
    db.commit()
    db.refresh(pipeline)
    return pipeline


def update_pipeline(db: Session, pipeline: Pipeline, data: PipelineUpdate) -> Pipeline:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(pipeline, field, value)
    db.commit()
    db.refresh(pipeline)
    return pipeline


def delete_pipeline(db: Session, pipeline: Pipeline) -> None:
    db.delete(pipeline)
    db.commit()


# =============================================================================
# Stages
# =============================================================================

def get_stages(db: Session, pipeline_id: UUID) -> list[PipelineStage]:
    return (
        db.query(PipelineStage)
        .filter(PipelineStage.pipeline_id == pipeline_id)
        .order_by(PipelineStage.order.asc())
        .all()
    )


def get_default_stage(db: Session, pipeline_id: UUID) -> PipelineStage | None:
    """First stage by order."""
    stages = get_stages(db, pipeline_id)
    return stages[0] if stages else None


def get_stage(db: Session, pipeline_id: UUID, stage_id: UUID) -> PipelineStage | None:
    return (
        db.query(PipelineStage)
        .filter(PipelineStage.id == stage_id, PipelineStage.pipeline_id == pipeline_id)
        .first()
    )


def create_stage(db: Session, pipeline: Pipeline, data: StageCreate) -> PipelineStage:
    order = data.order
    if order is None:
        max_order = (
            db.query(func.max(PipelineStage.order))
            .filter(PipelineStage.pipeline_id == pipeline.id)
            .scalar()
        )
        order = 0 if max_order is None else max_order + 1
    stage = PipelineStage(pipeline_id=pipeline.id, name=data.name, order=order, color=data.color)
    db.add(stage)
    db.commit()
    db.refresh(stage)
    return stage


def update_stage(db: Session, stage: PipelineStage, data: StageUpdate) -> PipelineStage:
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(stage, field, value)
    db.commit()
    db.refresh(stage)
    return stage


def delete_stage(db: Session, stage: PipelineStage) -> None:
    """Delete a stage; its items fall back to no stage."""
    db.query(PipelineItem).filter(PipelineItem.stage_id == stage.id).update(
        {PipelineItem.stage_id: None}, synchronize_session=False
    )
    db.delete(stage)
    db.commit()


# =============================================================================
# Items
# =============================================================================

def _validate_item_refs(
    db: Session, org_id: UUID, pipeline_id: UUID, stage_id: UUID | None, assignee_id: UUID | None
) -> None:
    if stage_id and not get_stage(db, pipeline_id, stage_id):
        raise ValueError("Stage not found in this pipeline")
    if assignee_id:
        member = (
            db.query(Membership)
            .filter(Membership.user_id == assignee_id, Membership.organization_id == org_id)
            .first()
        )
        if not member:
            raise ValueError("Assignee is not a member of this organization")


def list_items(
    db: Session,
    pipeline_id: UUID,
    status: PipelineItemStatus | None = None,
    stage_id: UUID | None = None,
) -> list[PipelineItem]:
    query = db.query(PipelineItem).filter(PipelineItem.pipeline_id == pipeline_id)
    if status:
        query = query.filter(PipelineItem.status == status.value)
    if stage_id:
        query = query.filter(PipelineItem.stage_id == stage_id)
    return query.order_by(PipelineItem.priority.desc(), PipelineItem.created_at.asc()).all()


def get_item(db: Session, pipeline_id: UUID, item_id: UUID) -> PipelineItem | None:
    """
    Get an item that must belong to pipeline_id.

    Returns None when missing; raises PipelineItemAccessError when it
    lives in another pipeline.
    """
    item = db.query(PipelineItem).filter(PipelineItem.id == item_id).first()
    if not item:
        return None
    if item.pipeline_id != pipeline_id:
        raise PipelineItemAccessError()
    return item


def create_item(
    db: Session,
    org_id: UUID,
    pipeline: Pipeline,
    user_id: UUID | None,
    data: PipelineItemCreate,
) -> PipelineItem:
    _validate_item_refs(db, org_id, pipeline.id, data.stage_id, data.assigned_to_user_id)
    stage_id = data.stage_id
    if stage_id is None:
        default_stage = get_default_stage(db, pipeline.id)
        stage_id = default_stage.id if default_stage else None

    item = PipelineItem(
        pipeline_id=pipeline.id,
        stage_id=stage_id,
        title=data.title,
        description=data.description,
        priority=data.priority,
        status=data.status.value,
        due_date=data.due_date,
        tags=data.tags,
        assigned_to_user_id=data.assigned_to_user_id,
        progress=data.progress,
        data=data.data,
        created_by_user_id=user_id,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def update_item(
    db: Session, org_id: UUID, item: PipelineItem, data: PipelineItemUpdate
) -> PipelineItem:
    updates = data.model_dump(exclude_unset=True)
    _validate_item_refs(
        db, org_id, item.pipeline_id, updates.get("stage_id"), updates.get("assigned_to_user_id")
    )
    for field, value in updates.items():
        if field == "status" and value is not None:
            value = PipelineItemStatus(value).value
        if field in ("title", "priority", "status", "progress", "tags", "data") and value is None:
            continue
        setattr(item, field, value)
    if item.status == PipelineItemStatus.COMPLETED.value:
        item.progress = 100
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, item: PipelineItem) -> None:
    db.delete(item)
    db.commit()

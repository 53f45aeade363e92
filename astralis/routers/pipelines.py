"""Pipelines router - pipelines, their stages and items."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.db.enums import PipelineItemStatus
from astralis.schemas.auth import UserSession
from astralis.schemas.pipeline import (
    PipelineCreate,
    PipelineItemCreate,
    PipelineItemRead,
    PipelineItemUpdate,
    PipelineRead,
    PipelineUpdate,
    StageCreate,
    StageRead,
    StageUpdate,
)
from astralis.services import pipeline_service

router = APIRouter(tags=["Pipelines"])


def _get_pipeline_or_404(db: Session, org_id: UUID, pipeline_id: UUID):
    pipeline = pipeline_service.get_pipeline(db, org_id, pipeline_id)
    if not pipeline:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return pipeline


def _get_item_or_error(db: Session, pipeline_id: UUID, item_id: UUID):
    try:
        item = pipeline_service.get_item(db, pipeline_id, item_id)
    except pipeline_service.PipelineItemAccessError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


# =============================================================================
# Pipelines
# =============================================================================

@router.get("", response_model=list[PipelineRead])
def list_pipelines(
    active_only: bool = False,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return pipeline_service.list_pipelines(db, session.org_id, active_only=active_only)


@router.post(
    "",
    response_model=PipelineRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_pipeline(
    data: PipelineCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return pipeline_service.create_pipeline(db, session.org_id, session.user_id, data)


@router.get("/{pipeline_id}", response_model=PipelineRead)
def get_pipeline(
    pipeline_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _get_pipeline_or_404(db, session.org_id, pipeline_id)


@router.patch(
    "/{pipeline_id}", response_model=PipelineRead, dependencies=[Depends(require_csrf_header)]
)
def update_pipeline(
    pipeline_id: UUID,
    data: PipelineUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    return pipeline_service.update_pipeline(db, pipeline, data)


@router.delete("/{pipeline_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_pipeline(
    pipeline_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    pipeline_service.delete_pipeline(db, pipeline)


# =============================================================================
# Stages
# =============================================================================

@router.get("/{pipeline_id}/stages", response_model=list[StageRead])
def list_stages(
    pipeline_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    return pipeline_service.get_stages(db, pipeline.id)


@router.post(
    "/{pipeline_id}/stages",
    response_model=StageRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_stage(
    pipeline_id: UUID,
    data: StageCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    return pipeline_service.create_stage(db, pipeline, data)


@router.patch(
    "/{pipeline_id}/stages/{stage_id}",
    response_model=StageRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_stage(
    pipeline_id: UUID,
    stage_id: UUID,
    data: StageUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    stage = pipeline_service.get_stage(db, pipeline.id, stage_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Stage not found")
    return pipeline_service.update_stage(db, stage, data)


@router.delete(
    "/{pipeline_id}/stages/{stage_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_stage(
    pipeline_id: UUID,
    stage_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    stage = pipeline_service.get_stage(db, pipeline.id, stage_id)
    if not stage:
        raise HTTPException(status_code=404, detail="Stage not found")
    pipeline_service.delete_stage(db, stage)


# =============================================================================
# Items
# =============================================================================

@router.get("/{pipeline_id}/items", response_model=list[PipelineItemRead])
def list_items(
    pipeline_id: UUID,
    status: PipelineItemStatus | None = None,
    stage_id: UUID | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    return pipeline_service.list_items(db, pipeline.id, status=status, stage_id=stage_id)


@router.post(
    "/{pipeline_id}/items",
    response_model=PipelineItemRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_item(
    pipeline_id: UUID,
    data: PipelineItemCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    try:
        return pipeline_service.create_item(db, session.org_id, pipeline, session.user_id, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{pipeline_id}/items/{item_id}", response_model=PipelineItemRead)
def get_item(
    pipeline_id: UUID,
    item_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    return _get_item_or_error(db, pipeline.id, item_id)


@router.patch(
    "/{pipeline_id}/items/{item_id}",
    response_model=PipelineItemRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_item(
    pipeline_id: UUID,
    item_id: UUID,
    data: PipelineItemUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    item = _get_item_or_error(db, pipeline.id, item_id)
    try:
        return pipeline_service.update_item(db, session.org_id, item, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete(
    "/{pipeline_id}/items/{item_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_item(
    pipeline_id: UUID,
    item_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline = _get_pipeline_or_404(db, session.org_id, pipeline_id)
    item = _get_item_or_error(db, pipeline.id, item_id)
    pipeline_service.delete_item(db, item)

"""Intake router - inbound requests, automatic routing and manual assignment."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.db.enums import IntakeSource, IntakeStatus, JobType
from astralis.schemas.auth import UserSession
from astralis.schemas.intake import IntakeAssign, IntakeCreate, IntakeRead, IntakeUpdate
from astralis.services import intake_routing_service, intake_service, job_service

router = APIRouter(tags=["Intake"])


def _get_intake_or_404(db: Session, org_id: UUID, intake_id: UUID):
    intake = intake_service.get_intake(db, org_id, intake_id)
    if not intake:
        raise HTTPException(status_code=404, detail="Intake request not found")
    return intake


@router.get("")
def list_intake(
    status: IntakeStatus | None = None,
    source: IntakeSource | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = intake_service.list_intake(
        db, session.org_id, status=status, source=source, limit=limit, offset=offset
    )
    return {
        "items": [IntakeRead.model_validate(i) for i in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("", status_code=201, dependencies=[Depends(require_csrf_header)])
async def create_intake(
    data: IntakeCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Create an intake request and route it immediately."""
    intake = intake_service.create_intake(db, session.org_id, session.user_id, data)
    routing = await intake_routing_service.route_intake(db, session.org_id, intake)
    db.refresh(intake)
    return {"intake_request": IntakeRead.model_validate(intake), "routing": routing}


@router.get("/{intake_id}", response_model=IntakeRead)
def get_intake(
    intake_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _get_intake_or_404(db, session.org_id, intake_id)


@router.patch("/{intake_id}", response_model=IntakeRead, dependencies=[Depends(require_csrf_header)])
def update_intake(
    intake_id: UUID,
    data: IntakeUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    intake = _get_intake_or_404(db, session.org_id, intake_id)
    return intake_service.update_intake(db, intake, data)


@router.delete("/{intake_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_intake(
    intake_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    intake = _get_intake_or_404(db, session.org_id, intake_id)
    intake_service.delete_intake(db, intake)


@router.post("/{intake_id}/assign", dependencies=[Depends(require_csrf_header)])
def assign_intake(
    intake_id: UUID,
    data: IntakeAssign,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    intake = _get_intake_or_404(db, session.org_id, intake_id)
    try:
        intake, item = intake_service.assign_intake(
            db,
            session.org_id,
            intake,
            data.pipeline_id,
            stage_id=data.stage_id,
            user_id=session.user_id,
        )
    except intake_service.IntakeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except intake_service.IntakeAssignmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "intake_request": IntakeRead.model_validate(intake),
        "pipeline_item_id": str(item.id),
    }


@router.post("/{intake_id}/route", status_code=202, dependencies=[Depends(require_csrf_header)])
def reroute_intake(
    intake_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Queue automatic routing again for a request still in NEW."""
    intake = _get_intake_or_404(db, session.org_id, intake_id)
    if intake.status != IntakeStatus.NEW.value:
        raise HTTPException(status_code=400, detail="Only NEW intake requests can be routed")
    job = job_service.schedule_job(
        db, session.org_id, JobType.INTAKE_ROUTING, {"intake_id": str(intake.id)}
    )
    return {"job_id": str(job.id)}

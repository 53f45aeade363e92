"""Availability rules router - weekly working-hour windows for the caller."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.schemas.auth import UserSession
from astralis.schemas.scheduling import (
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    QuickConflictRequest,
    QuickConflictResponse,
)
from astralis.services import availability_service

router = APIRouter(tags=["Availability"])


def _raise_for(e: availability_service.AvailabilityServiceError):
    if isinstance(e, availability_service.RuleOwnershipError):
        raise HTTPException(status_code=403, detail=str(e))
    raise HTTPException(status_code=404, detail=str(e))


@router.get("", response_model=list[AvailabilityRuleRead])
def list_rules(
    day_of_week: int | None = Query(None, ge=0, le=6),
    active_only: bool = False,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return availability_service.list_rules(
        db, session.user_id, day=day_of_week, active_only=active_only
    )


@router.post(
    "",
    response_model=AvailabilityRuleRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_rule(
    data: AvailabilityRuleCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return availability_service.create_rule(db, session.org_id, session.user_id, data)


@router.post("/quick-check", response_model=QuickConflictResponse)
def quick_conflict_check(
    data: QuickConflictRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Fast yes/no overlap check against the caller's booked events."""
    if data.end_time <= data.start_time:
        raise HTTPException(status_code=400, detail="End time must be after start time")
    return QuickConflictResponse(
        has_conflict=availability_service.check_quick_conflict(
            db, session.user_id, data.start_time, data.end_time
        )
    )


@router.patch(
    "/{rule_id}",
    response_model=AvailabilityRuleRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_rule(
    rule_id: UUID,
    data: AvailabilityRuleUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return availability_service.update_rule(db, rule_id, session.user_id, data)
    except availability_service.AvailabilityServiceError as e:
        _raise_for(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{rule_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_rule(
    rule_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        availability_service.delete_rule(db, rule_id, session.user_id)
    except availability_service.AvailabilityServiceError as e:
        _raise_for(e)

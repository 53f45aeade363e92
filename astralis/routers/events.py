"""Events router - calendar events, reminders and conflict checks."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.db.enums import EventStatus
from astralis.schemas.auth import UserSession
from astralis.schemas.scheduling import (
    ConflictCheckRequest,
    ConflictCheckResponse,
    EventCreate,
    EventRead,
    EventUpdate,
    ReminderRead,
)
from astralis.services import conflict_service, reminder_service, scheduling_service

router = APIRouter(tags=["Events"])


def _raise_for(e: ValueError):
    detail = str(e)
    status = 404 if "not found" in detail.lower() else 400
    raise HTTPException(status_code=status, detail=detail)


@router.get("", response_model=list[EventRead])
def list_events(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    status: EventStatus | None = None,
    search: str | None = Query(None, max_length=100),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return scheduling_service.list_events(
        db,
        session.org_id,
        session.user_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        search=search,
    )


@router.post(
    "",
    response_model=EventRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_event(
    data: EventCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return scheduling_service.create_event(db, session.org_id, session.user_id, data)
    except ValueError as e:
        _raise_for(e)


@router.get("/reminders", response_model=list[ReminderRead])
def list_reminders(
    start: datetime | None = None,
    end: datetime | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return reminder_service.list_reminders(db, session.org_id, session.user_id, start, end)


@router.post("/check-conflicts", response_model=ConflictCheckResponse)
def check_conflicts(
    data: ConflictCheckRequest,
    exclude_event_id: UUID | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Score overlaps for a proposed slot; suggests same-day alternatives on conflict."""
    result = conflict_service.detect_conflicts(
        db,
        session.org_id,
        session.user_id,
        data.start_time,
        data.end_time,
        participant_emails=[str(e) for e in data.participant_emails],
        exclude_event_id=exclude_event_id,
    )
    alternatives = []
    if result.has_conflict:
        duration = int((data.end_time - data.start_time).total_seconds() // 60)
        alternatives = conflict_service.find_alternative_slots(
            db, session.user_id, duration, data.start_time.date()
        )[:5]
    return ConflictCheckResponse(
        has_conflict=result.has_conflict,
        conflicts=[c.to_dict() for c in result.conflicts],
        availability_issues=result.availability_issues,
        severity=result.severity,
        alternatives=alternatives,
    )


@router.get("/alternatives")
def alternative_slots(
    day: date,
    duration: int = Query(..., ge=15, le=480),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return {
        "slots": conflict_service.find_alternative_slots(db, session.user_id, duration, day)
    }


@router.get("/{event_id}", response_model=EventRead)
def get_event(
    event_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    event = scheduling_service.get_event(db, session.org_id, event_id, user_id=session.user_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.patch("/{event_id}", response_model=EventRead, dependencies=[Depends(require_csrf_header)])
def update_event(
    event_id: UUID,
    data: EventUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return scheduling_service.update_event(
            db, session.org_id, session.user_id, event_id, data
        )
    except ValueError as e:
        _raise_for(e)


@router.post(
    "/{event_id}/cancel",
    response_model=EventRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_event(
    event_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return scheduling_service.cancel_event(db, session.org_id, session.user_id, event_id)
    except ValueError as e:
        _raise_for(e)


@router.delete("/{event_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_event(
    event_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        scheduling_service.delete_event(db, session.org_id, session.user_id, event_id)
    except ValueError as e:
        _raise_for(e)

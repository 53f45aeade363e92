"""Agent router - slot suggestions, availability, decision review and logs."""

from datetime import date, datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_roles,
    resolve_target_user,
)
from astralis.db.enums import (
    DecisionStatus,
    DecisionType,
    InputSource,
    LogCategory,
    LogLevel,
    ROLES_CAN_REVIEW_DECISIONS,
)
from astralis.schemas.agent import (
    AgentLogListResponse,
    AgentLogRead,
    AgentLogStats,
    AvailabilityResponse,
    DecisionListResponse,
    DecisionRead,
    DecisionRejectRequest,
    SuggestRequest,
    SuggestResponse,
)
from astralis.schemas.auth import UserSession
from astralis.services import (
    agent_decision_service,
    agent_log_service,
    ai_scheduling_service,
    availability_service,
    overbooking_service,
)
from astralis.utils.time_windows import get_zone

router = APIRouter(tags=["Agent"])

_reviewer = require_roles(list(ROLES_CAN_REVIEW_DECISIONS))


# =============================================================================
# Scheduling assistant
# =============================================================================

@router.post("/suggest", response_model=SuggestResponse)
async def suggest_slots(
    data: SuggestRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Rank open slots for a meeting on one day for the caller (or a colleague)."""
    user = resolve_target_user(db, session, data.user_id)
    tz_name = user.timezone
    day = data.preferred_date or (datetime.now(get_zone(tz_name)).date() + timedelta(days=1))

    result = await ai_scheduling_service.suggest_time_slots(
        db,
        session.org_id,
        user.id,
        day,
        data.duration,
        preferred_time=data.preferred_time,
        participant_emails=[str(e) for e in data.participants],
        context=data.context,
        buffer_minutes=data.buffer_minutes,
        tz_name=tz_name,
    )
    overbooking = overbooking_service.analyze_overbooking(db, user.id, day)

    return SuggestResponse(
        slots=result["slots"],
        total_candidates=result["total_candidates"],
        analysis_context=result["analysis_context"],
        overbooking_warning=overbooking if overbooking["is_overbooked"] else None,
        metadata={
            "user_id": user.id,
            "date": day.isoformat(),
            "duration": data.duration,
            "preferred_time": data.preferred_time.value if data.preferred_time else "any",
            "participant_count": len(data.participants),
        },
    )


@router.get("/availability", response_model=AvailabilityResponse)
def get_availability(
    start_date: date,
    end_date: date,
    user_id: UUID | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    user = resolve_target_user(db, session, user_id)
    try:
        blocks = availability_service.get_availability_blocks(
            db, session.org_id, user.id, start_date, end_date
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AvailabilityResponse(
        user_id=user.id,
        start_date=start_date,
        end_date=end_date,
        **blocks,
    )


# =============================================================================
# Decisions
# =============================================================================

@router.get("/decisions", response_model=DecisionListResponse)
def list_decisions(
    status: DecisionStatus | None = None,
    input_source: InputSource | None = None,
    decision_type: DecisionType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    decisions, pagination = agent_decision_service.list_decisions(
        db,
        session.org_id,
        status=status,
        input_source=input_source,
        decision_type=decision_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return DecisionListResponse(decisions=decisions, pagination=pagination)


def _raise_for(e: agent_decision_service.DecisionServiceError):
    if isinstance(e, agent_decision_service.DecisionNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, agent_decision_service.DecisionAccessError):
        raise HTTPException(status_code=403, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/decisions/{decision_id}/approve",
    response_model=DecisionRead,
    dependencies=[Depends(require_csrf_header)],
)
def approve_decision(
    decision_id: UUID,
    session: UserSession = Depends(_reviewer),
    db: Session = Depends(get_db),
):
    try:
        return agent_decision_service.approve_decision(
            db, session.org_id, decision_id, session.user_id
        )
    except agent_decision_service.DecisionServiceError as e:
        _raise_for(e)


@router.post(
    "/decisions/{decision_id}/reject",
    response_model=DecisionRead,
    dependencies=[Depends(require_csrf_header)],
)
def reject_decision(
    decision_id: UUID,
    data: DecisionRejectRequest,
    session: UserSession = Depends(_reviewer),
    db: Session = Depends(get_db),
):
    try:
        return agent_decision_service.reject_decision(
            db,
            session.org_id,
            decision_id,
            session.user_id,
            session.display_name,
            data.reason,
        )
    except agent_decision_service.DecisionServiceError as e:
        _raise_for(e)


# =============================================================================
# Logs
# =============================================================================

@router.get("/logs", response_model=AgentLogListResponse, response_model_by_alias=True)
def list_logs(
    level: LogLevel | None = None,
    category: LogCategory | None = None,
    task_id: str | None = None,
    user_id: UUID | None = None,
    action: str | None = Query(None, max_length=100),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    logs, total = agent_log_service.query_logs(
        db,
        session.org_id,
        level=level,
        category=category,
        task_id=task_id,
        user_id=user_id,
        action=action,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    return AgentLogListResponse(
        logs=logs,
        pagination={
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(logs) < total,
        },
    )


@router.get("/logs/stats", response_model=AgentLogStats)
def log_stats(
    period_hours: int = Query(24, ge=1, le=24 * 30),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return agent_log_service.get_log_stats(db, session.org_id, period_hours=period_hours)


@router.get(
    "/logs/tasks/{task_id}",
    response_model=list[AgentLogRead],
    response_model_by_alias=True,
)
def task_timeline(
    task_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return agent_log_service.get_task_timeline(db, session.org_id, task_id)


@router.delete("/logs", dependencies=[Depends(require_csrf_header)])
def cleanup_logs(
    days: int = Query(30, ge=1, le=365),
    session: UserSession = Depends(_reviewer),
    db: Session = Depends(get_db),
):
    deleted = agent_log_service.cleanup_old_logs(db, org_id=session.org_id, days=days)
    return {"deleted": deleted}

"""Agent decision service - review queue for automation decisions.

Decisions are recorded by routing/automation code. PENDING and
REQUIRES_APPROVAL decisions can be approved (their actions run through
agent_action_executor) or rejected by a reviewer.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import (
    DecisionStatus,
    DecisionType,
    InputSource,
    LogCategory,
    REVIEWABLE_DECISION_STATUSES,
)
from astralis.db.models import AgentDecision
from astralis.services import agent_action_executor, agent_log_service
from astralis.utils.time_windows import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class DecisionServiceError(Exception):
    """Base exception for decision review operations."""
    pass


class DecisionNotFoundError(DecisionServiceError):
    def __init__(self):
        super().__init__("Decision not found")


class DecisionAccessError(DecisionServiceError):
    def __init__(self):
        super().__init__("Decision belongs to a different organization")


class DecisionStateError(DecisionServiceError):
    """Decision is not in a reviewable status."""
    pass


def record_decision(
    db: Session,
    org_id: UUID,
    *,
    decision_type: DecisionType,
    input_source: InputSource,
    confidence: float,
    reasoning: str | None = None,
    input_data: dict | None = None,
    actions: list[dict] | None = None,
    status: DecisionStatus = DecisionStatus.PENDING,
    task_id: str | None = None,
    result: dict | None = None,
) -> AgentDecision:
    """Persist a decision. Already-applied decisions get executed_at stamped."""
    decision = AgentDecision(
        organization_id=org_id,
        task_id=task_id,
        input_source=input_source.value,
        decision_type=decision_type.value,
        status=status.value,
        confidence=confidence,
        reasoning=reasoning,
        input_data=input_data or {},
        actions=actions or [],
        result=result,
        executed_at=utcnow() if status == DecisionStatus.EXECUTED else None,
    )
    db.add(decision)
    db.commit()
    db.refresh(decision)
    return decision


def list_decisions(
    db: Session,
    org_id: UUID,
    status: DecisionStatus | None = None,
    input_source: InputSource | None = None,
    decision_type: DecisionType | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> tuple[list[AgentDecision], dict]:
    """List decisions newest first with {total, limit, offset, has_more}."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    query = db.query(AgentDecision).filter(AgentDecision.organization_id == org_id)
    if status:
        query = query.filter(AgentDecision.status == status.value)
    if input_source:
        query = query.filter(AgentDecision.input_source == input_source.value)
    if decision_type:
        query = query.filter(AgentDecision.decision_type == decision_type.value)
    if start_date:
        query = query.filter(AgentDecision.created_at >= start_date)
    if end_date:
        query = query.filter(AgentDecision.created_at <= end_date)

    total = query.count()
    decisions = (
        query.order_by(AgentDecision.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    pagination = {
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(decisions) < total,
    }
    return decisions, pagination


def _get_reviewable(db: Session, org_id: UUID, decision_id: UUID, verb: str) -> AgentDecision:
    decision = db.query(AgentDecision).filter(AgentDecision.id == decision_id).first()
    if not decision:
        raise DecisionNotFoundError()
    if decision.organization_id != org_id:
        raise DecisionAccessError()
    if decision.status not in REVIEWABLE_DECISION_STATUSES:
        raise DecisionStateError(
            f"Only PENDING or REQUIRES_APPROVAL decisions can be {verb}."
        )
    return decision


def approve_decision(
    db: Session, org_id: UUID, decision_id: UUID, reviewer_id: UUID
) -> AgentDecision:
    """
    Approve a decision and execute its actions in priority order.

    The decision ends EXECUTED when every action succeeds, FAILED
    otherwise; action errors are joined with "; ".
    """
    decision = _get_reviewable(db, org_id, decision_id, "approved")

    started = time.monotonic()
    outcome = agent_action_executor.execute_actions(
        db, org_id, reviewer_id, decision.actions or []
    )
    elapsed_ms = int((time.monotonic() - started) * 1000)

    decision.reviewed_by_user_id = reviewer_id
    decision.executed_at = utcnow()
    decision.execution_time_ms = elapsed_ms
    decision.result = {"results": outcome.results}
    if outcome.errors:
        decision.status = DecisionStatus.FAILED.value
        decision.error_message = "; ".join(outcome.errors)
    else:
        decision.status = DecisionStatus.EXECUTED.value
        decision.error_message = None

    agent_log_service.info(
        db,
        LogCategory.SYSTEM,
        "decision_approved",
        f"Decision {decision.id} approved ({decision.status})",
        org_id=org_id,
        user_id=reviewer_id,
        task_id=decision.task_id,
        duration_ms=elapsed_ms,
        metadata={"decision_id": str(decision.id), "errors": outcome.errors},
    )
    db.commit()
    db.refresh(decision)
    return decision


def reject_decision(
    db: Session,
    org_id: UUID,
    decision_id: UUID,
    reviewer_id: UUID,
    reviewer_name: str,
    reason: str,
) -> AgentDecision:
    if not reason or not reason.strip():
        raise DecisionStateError("A rejection reason is required.")
    decision = _get_reviewable(db, org_id, decision_id, "rejected")

    decision.status = DecisionStatus.REJECTED.value
    decision.error_message = f"Rejected by {reviewer_name}: {reason.strip()}"
    decision.executed_at = utcnow()
    decision.reviewed_by_user_id = reviewer_id

    agent_log_service.info(
        db,
        LogCategory.SYSTEM,
        "decision_rejected",
        decision.error_message,
        org_id=org_id,
        user_id=reviewer_id,
        task_id=decision.task_id,
        metadata={"decision_id": str(decision.id)},
    )
    db.commit()
    db.refresh(decision)
    return decision

"""Agent log service - structured agent activity persisted to agent_logs.

Rows mirror to the stdlib logger so they also show up in process logs.
Write failures never propagate to the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from astralis.db.enums import LogCategory, LogLevel
from astralis.db.models import AgentLog
from astralis.utils.time_windows import utcnow

logger = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

DEFAULT_QUERY_LIMIT = 100
DEFAULT_RETENTION_DAYS = 30


def _error_payload(error: BaseException | dict | str | None) -> dict | None:
    if error is None:
        return None
    if isinstance(error, dict):
        return error
    if isinstance(error, BaseException):
        return {"type": type(error).__name__, "message": str(error)}
    return {"message": str(error)}


def log(
    db: Session,
    *,
    level: LogLevel,
    category: LogCategory,
    action: str,
    message: str,
    org_id: UUID | None = None,
    user_id: UUID | None = None,
    task_id: str | None = None,
    duration_ms: int | None = None,
    metadata: dict[str, Any] | None = None,
    error: BaseException | dict | str | None = None,
) -> AgentLog | None:
    """Record one agent log entry. The caller owns the commit."""
    logger.log(
        _STDLIB_LEVELS[level],
        "[%s] %s: %s",
        category.value,
        action,
        message,
        extra={"task_id": task_id} if task_id else None,
    )
    entry = AgentLog(
        organization_id=org_id,
        user_id=user_id,
        task_id=task_id,
        level=level.value,
        category=category.value,
        action=action,
        message=message,
        duration_ms=duration_ms,
        log_metadata=metadata,
        error=_error_payload(error),
    )
    try:
        db.add(entry)
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to persist agent log %s: %s", action, exc)
        return None
    return entry


def info(db: Session, category: LogCategory, action: str, message: str, **kwargs) -> AgentLog | None:
    return log(db, level=LogLevel.INFO, category=category, action=action, message=message, **kwargs)


def warn(db: Session, category: LogCategory, action: str, message: str, **kwargs) -> AgentLog | None:
    return log(db, level=LogLevel.WARN, category=category, action=action, message=message, **kwargs)


def error(db: Session, category: LogCategory, action: str, message: str, **kwargs) -> AgentLog | None:
    return log(db, level=LogLevel.ERROR, category=category, action=action, message=message, **kwargs)


# =============================================================================
# Queries
# =============================================================================

def query_logs(
    db: Session,
    org_id: UUID,
    level: LogLevel | None = None,
    category: LogCategory | None = None,
    task_id: str | None = None,
    user_id: UUID | None = None,
    action: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = DEFAULT_QUERY_LIMIT,
    offset: int = 0,
) -> tuple[list[AgentLog], int]:
    """Filtered logs, newest first. `action` matches as a substring."""
    query = db.query(AgentLog).filter(AgentLog.organization_id == org_id)
    if level:
        query = query.filter(AgentLog.level == level.value)
    if category:
        query = query.filter(AgentLog.category == category.value)
    if task_id:
        query = query.filter(AgentLog.task_id == task_id)
    if user_id:
        query = query.filter(AgentLog.user_id == user_id)
    if action:
        query = query.filter(AgentLog.action.ilike(f"%{action}%"))
    if start_date:
        query = query.filter(AgentLog.created_at >= start_date)
    if end_date:
        query = query.filter(AgentLog.created_at <= end_date)

    total = query.count()
    logs = (
        query.order_by(AgentLog.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return logs, total


def get_task_timeline(db: Session, org_id: UUID, task_id: str) -> list[AgentLog]:
    """All entries for a task in chronological order."""
    return (
        db.query(AgentLog)
        .filter(AgentLog.organization_id == org_id, AgentLog.task_id == task_id)
        .order_by(AgentLog.created_at.asc())
        .all()
    )


def get_log_stats(db: Session, org_id: UUID, period_hours: int = 24) -> dict[str, Any]:
    """Counts by level and category plus error rate over the last period_hours."""
    since = utcnow() - timedelta(hours=period_hours)
    base = db.query(AgentLog).filter(
        AgentLog.organization_id == org_id,
        AgentLog.created_at >= since,
    )

    by_level = {lvl.value: 0 for lvl in LogLevel}
    for level_value, count in (
        base.with_entities(AgentLog.level, func.count(AgentLog.id))
        .group_by(AgentLog.level)
        .all()
    ):
        by_level[level_value] = count

    by_category = {cat.value: 0 for cat in LogCategory}
    for category_value, count in (
        base.with_entities(AgentLog.category, func.count(AgentLog.id))
        .group_by(AgentLog.category)
        .all()
    ):
        by_category[category_value] = count

    total = sum(by_level.values())
    avg_duration = (
        base.filter(AgentLog.duration_ms.isnot(None))
        .with_entities(func.avg(AgentLog.duration_ms))
        .scalar()
    )
    return {
        "period_hours": period_hours,
        "total": total,
        "by_level": by_level,
        "by_category": by_category,
        "error_rate": round(by_level[LogLevel.ERROR.value] / total, 4) if total else 0.0,
        "avg_duration_ms": round(float(avg_duration), 2) if avg_duration is not None else None,
    }


def cleanup_old_logs(
    db: Session, org_id: UUID | None = None, days: int = DEFAULT_RETENTION_DAYS
) -> int:
    """Delete logs older than `days`. Returns the number of rows removed."""
    cutoff = utcnow() - timedelta(days=days)
    query = db.query(AgentLog).filter(AgentLog.created_at < cutoff)
    if org_id:
        query = query.filter(AgentLog.organization_id == org_id)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    logger.info("Deleted %s agent logs older than %s days", deleted, days)
    return deleted

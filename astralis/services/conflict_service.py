"""Conflict engine - overlap detection, scoring and alternative slots.

All intervals are half-open [start, end) in UTC. Two intervals conflict
when start_a < end_b and end_a > start_b; touching intervals are
"back to back" and score low rather than zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import ConflictSeverity, ConflictType
from astralis.db.models import Membership, SchedulingEvent, User
from astralis.services import availability_service
from astralis.utils.time_windows import contains, ensure_utc, overlaps, round_half_up

logger = logging.getLogger(__name__)

BACK_TO_BACK_SCORE = 10
HIGH_SEVERITY_SCORE = 80
MEDIUM_SEVERITY_SCORE = 50
ALTERNATIVE_SLOT_STEP = timedelta(minutes=30)


@dataclass
class Conflict:
    event_id: UUID
    event_title: str
    start_time: datetime
    end_time: datetime
    conflict_score: int
    conflict_type: str

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "event_title": self.event_title,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "conflict_score": self.conflict_score,
            "conflict_type": self.conflict_type,
        }


@dataclass
class ConflictResult:
    has_conflict: bool
    conflicts: list[Conflict] = field(default_factory=list)
    availability_issues: list[str] = field(default_factory=list)
    severity: str = ConflictSeverity.NONE.value


# =============================================================================
# Scoring
# =============================================================================

def score_conflict(
    slot_start: datetime, slot_end: datetime, event_start: datetime, event_end: datetime
) -> int:
    """
    0-100 severity of one slot/event pair.

    Containment scores 100; partial overlaps scale with the share of the
    shorter interval that is covered; touching scores BACK_TO_BACK_SCORE.
    """
    slot_start, slot_end = ensure_utc(slot_start), ensure_utc(slot_end)
    event_start, event_end = ensure_utc(event_start), ensure_utc(event_end)

    if not overlaps(slot_start, slot_end, event_start, event_end):
        if slot_end == event_start or event_end == slot_start:
            return BACK_TO_BACK_SCORE
        return 0

    if contains(event_start, event_end, slot_start, slot_end) or contains(
        slot_start, slot_end, event_start, event_end
    ):
        return 100

    overlap = (min(slot_end, event_end) - max(slot_start, event_start)).total_seconds()
    shorter = min(
        (slot_end - slot_start).total_seconds(),
        (event_end - event_start).total_seconds(),
    )
    pct = overlap / shorter * 100

    if pct >= 75:
        score = min(80 + (pct - 75) * 0.8, 99)
    elif pct >= 50:
        score = 50 + (pct - 50) * 1.2
    elif pct >= 25:
        score = 25 + (pct - 25)
    else:
        score = max(1, pct)
    return int(round_half_up(score))


def classify_conflict(
    slot_start: datetime, slot_end: datetime, event_start: datetime, event_end: datetime
) -> str:
    slot_start, slot_end = ensure_utc(slot_start), ensure_utc(slot_end)
    event_start, event_end = ensure_utc(event_start), ensure_utc(event_end)
    if contains(event_start, event_end, slot_start, slot_end):
        return ConflictType.FULL_OVERLAP.value
    if slot_end == event_start or event_end == slot_start:
        return ConflictType.BACK_TO_BACK.value
    return ConflictType.PARTIAL_OVERLAP.value


def _severity(conflicts: list[Conflict], availability_issues: list[str]) -> str:
    if not conflicts and not availability_issues:
        return ConflictSeverity.NONE.value
    max_score = max((c.conflict_score for c in conflicts), default=0)
    if max_score >= HIGH_SEVERITY_SCORE or availability_issues:
        return ConflictSeverity.HIGH.value
    if max_score >= MEDIUM_SEVERITY_SCORE:
        return ConflictSeverity.MEDIUM.value
    return ConflictSeverity.LOW.value


# =============================================================================
# Detection
# =============================================================================

def get_conflicting_events(
    db: Session,
    user_id: UUID,
    start: datetime,
    end: datetime,
    exclude_event_id: UUID | None = None,
) -> list[SchedulingEvent]:
    """Blocking events of the user that strictly overlap the window."""
    events = availability_service.get_blocking_events(db, user_id, start, end)
    if exclude_event_id:
        events = [e for e in events if e.id != exclude_event_id]
    return events


def _availability_issues(db: Session, user_id: UUID, start: datetime, end: datetime) -> list[str]:
    windows = availability_service.get_windows_at(db, user_id, start, include_inactive=True)
    active = [w for w in windows if w.is_active]

    issues = []
    for window in windows:
        if not window.is_active and overlaps(start, end, window.start, window.end):
            issues.append(f"Time conflicts with unavailable period {window.label}")
    if active and not any(contains(w.start, w.end, start, end) for w in active):
        issues.append("Time is outside of available hours")
    return issues


def _participant_conflicts(
    db: Session,
    org_id: UUID,
    participant_emails: list[str],
    start: datetime,
    end: datetime,
) -> list[Conflict]:
    if not participant_emails:
        return []
    emails = {e.lower() for e in participant_emails}
    participants = (
        db.query(User)
        .join(Membership, Membership.user_id == User.id)
        .filter(Membership.organization_id == org_id)
        .all()
    )
    conflicts = []
    for participant in participants:
        if participant.email.lower() not in emails:
            continue
        for event in get_conflicting_events(db, participant.id, start, end):
            conflicts.append(
                Conflict(
                    event_id=event.id,
                    event_title=f"{participant.display_name or participant.email}: {event.title}",
                    start_time=ensure_utc(event.start_time),
                    end_time=ensure_utc(event.end_time),
                    conflict_score=score_conflict(start, end, event.start_time, event.end_time),
                    conflict_type=ConflictType.PARTIAL_OVERLAP.value,
                )
            )
    return conflicts


def detect_conflicts(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    start: datetime,
    end: datetime,
    participant_emails: list[str] | None = None,
    exclude_event_id: UUID | None = None,
) -> ConflictResult:
    """Full conflict analysis for a proposed slot."""
    start, end = ensure_utc(start), ensure_utc(end)

    conflicts = [
        Conflict(
            event_id=event.id,
            event_title=event.title,
            start_time=ensure_utc(event.start_time),
            end_time=ensure_utc(event.end_time),
            conflict_score=score_conflict(start, end, event.start_time, event.end_time),
            conflict_type=classify_conflict(start, end, event.start_time, event.end_time),
        )
        for event in get_conflicting_events(db, user_id, start, end, exclude_event_id)
    ]
    conflicts.extend(_participant_conflicts(db, org_id, participant_emails or [], start, end))
    issues = _availability_issues(db, user_id, start, end)

    return ConflictResult(
        has_conflict=bool(conflicts) or bool(issues),
        conflicts=conflicts,
        availability_issues=issues,
        severity=_severity(conflicts, issues),
    )


def check_availability(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    start: datetime,
    end: datetime,
    participant_emails: list[str] | None = None,
) -> bool:
    return not detect_conflicts(db, org_id, user_id, start, end, participant_emails).has_conflict


def find_alternative_slots(
    db: Session, user_id: UUID, duration_minutes: int, day: date
) -> list[dict]:
    """Free slots of the given length inside the day's active rules, 30 minutes apart."""
    duration = timedelta(minutes=duration_minutes)
    windows = availability_service.get_user_availability(db, user_id, day)
    if not windows:
        return []
    busy = get_conflicting_events(
        db, user_id, min(w.start for w in windows), max(w.end for w in windows)
    )

    slots = []
    for window in windows:
        slot_start = window.start
        while slot_start + duration <= window.end:
            slot_end = slot_start + duration
            if not any(
                overlaps(slot_start, slot_end, ensure_utc(e.start_time), ensure_utc(e.end_time))
                for e in busy
            ):
                slots.append({"start_time": slot_start, "end_time": slot_end})
            slot_start += ALTERNATIVE_SLOT_STEP
    return slots

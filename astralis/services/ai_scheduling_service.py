"""AI slot suggestion.

Pipeline: generate candidate slots for a day -> keep slots inside the
user's availability -> drop slots that collide with anyone's events
(with buffer) -> let the model rank the survivors. Every model failure
degrades to a deterministic ranking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from astralis.db.enums import PreferredTime
from astralis.db.models import Membership, User
from astralis.services import ai_provider, availability_service, conflict_service
from astralis.services.ai_provider import ChatMessage
from astralis.services.ai_response_validation import parse_json_array, validate_model_list
from astralis.utils.time_windows import contains, get_zone, round_half_up, wall_clock

logger = logging.getLogger(__name__)

SLOT_STEP = timedelta(minutes=30)
DEFAULT_DAY_RANGE = ("09:00", "17:00")
PREFERRED_RANGES: dict[PreferredTime, tuple[str, str]] = {
    PreferredTime.MORNING: ("08:00", "12:00"),
    PreferredTime.AFTERNOON: ("12:00", "17:00"),
    PreferredTime.EVENING: ("17:00", "21:00"),
}

MAX_SLOTS_FOR_AI = 20
TOP_SUGGESTIONS = 5
FALLBACK_SCORE_FLOOR = 50

SYSTEM_PROMPT = (
    "You are a scheduling expert that provides practical, business-focused recommendations."
)
PARSE_FALLBACK_REASONING = "Available time slot based on calendar availability."
HOUR_FALLBACK_REASONING = (
    "Available time slot based on calendar availability and general business hour preferences."
)


@dataclass
class TimeSlot:
    start: datetime
    end: datetime


class SlotRanking(BaseModel):
    """One entry of the model's JSON ranking."""

    slotIndex: int = Field(..., ge=1)
    score: float = Field(..., ge=0, le=100)
    reasoning: str = ""
    confidenceLevel: str = "medium"


def _ranked(slot: TimeSlot, score: float, reasoning: str, confidence: str) -> dict:
    return {
        "start_time": slot.start,
        "end_time": slot.end,
        "score": int(round_half_up(score)),
        "reasoning": reasoning,
        "confidence": confidence,
    }


# =============================================================================
# Candidate generation and filtering
# =============================================================================

def generate_time_slots(
    day: date,
    duration_minutes: int,
    preferred_time: PreferredTime | None = None,
    tz_name: str | None = None,
) -> list[TimeSlot]:
    """Slots every 30 minutes inside the preferred range (09:00-17:00 by default)."""
    range_start, range_end = PREFERRED_RANGES.get(preferred_time, DEFAULT_DAY_RANGE)
    day_start = wall_clock(day, range_start, tz_name)
    day_end = wall_clock(day, range_end, tz_name)
    duration = timedelta(minutes=duration_minutes)

    slots = []
    cursor = day_start
    while cursor + duration <= day_end:
        slots.append(TimeSlot(start=cursor, end=cursor + duration))
        cursor += SLOT_STEP
    return slots


def filter_by_availability(db: Session, user_id: UUID, slots: list[TimeSlot]) -> list[TimeSlot]:
    """Keep slots fully inside an active rule. Users without rules are open all day."""
    if not availability_service.user_has_rules(db, user_id):
        return slots

    rules = availability_service.list_rules(db, user_id, active_only=True)
    return [
        slot
        for slot in slots
        if any(
            contains(w.start, w.end, slot.start, slot.end)
            for w in availability_service.windows_at(rules, slot.start)
        )
    ]


def filter_by_conflicts(
    db: Session,
    user_ids: list[UUID],
    slots: list[TimeSlot],
    buffer_minutes: int = 0,
) -> list[TimeSlot]:
    """Drop slots whose buffered window collides with any listed user's events."""
    buffer = timedelta(minutes=buffer_minutes)
    kept = []
    for slot in slots:
        window_start, window_end = slot.start - buffer, slot.end + buffer
        if not any(
            conflict_service.get_conflicting_events(db, uid, window_start, window_end)
            for uid in user_ids
        ):
            kept.append(slot)
    return kept


# =============================================================================
# Ranking
# =============================================================================

def _hour_score(hour: int) -> int:
    if 9 <= hour < 11:
        return 90
    if 13 <= hour < 15:
        return 85
    if 11 <= hour < 12:
        return 80
    if 8 <= hour < 9 or 15 <= hour < 16:
        return 75
    return 70


def rank_by_business_hours(slots: list[TimeSlot], tz_name: str | None = None) -> list[dict]:
    """
    Deterministic scores for the first TOP_SUGGESTIONS slots, in slot order.

    Each later slot loses 2 points so earlier options stay ahead on equal hours.
    """
    zone = get_zone(tz_name)
    return [
        _ranked(
            slot,
            max(FALLBACK_SCORE_FLOOR, _hour_score(slot.start.astimezone(zone).hour) - i * 2),
            HOUR_FALLBACK_REASONING,
            "medium",
        )
        for i, slot in enumerate(slots[:TOP_SUGGESTIONS])
    ]


def _parse_fallback(slots: list[TimeSlot]) -> list[dict]:
    return [
        _ranked(slot, 80 - i * 10, PARSE_FALLBACK_REASONING, "medium")
        for i, slot in enumerate(slots[:TOP_SUGGESTIONS])
    ]


def _build_ranking_prompt(
    slots: list[TimeSlot], context: str, participant_count: int, tz_name: str | None
) -> str:
    zone = get_zone(tz_name)
    lines = [
        f"{i}. {s.start.astimezone(zone).strftime('%A %Y-%m-%d %H:%M')}"
        f" - {s.end.astimezone(zone).strftime('%H:%M')}"
        for i, s in enumerate(slots, start=1)
    ]
    return (
        f"Rank these available meeting slots for: {context}\n"
        f"Participants: {participant_count}\n"
        f"Timezone: {zone.key}\n\n"
        "Available slots:\n" + "\n".join(lines) + "\n\n"
        "Consider energy levels, focus time, meeting fatigue and typical business norms.\n"
        "Respond with ONLY a JSON array like:\n"
        '[{"slotIndex": 1, "score": 95, "reasoning": "...", "confidenceLevel": "high"}]\n'
        "slotIndex is the 1-based number of the slot above; score is 0-100; "
        "confidenceLevel is one of high, medium, low."
    )


async def rank_slots_with_ai(
    slots: list[TimeSlot],
    context: str,
    participant_count: int,
    tz_name: str | None = None,
) -> list[dict]:
    """Slots in the order the model ranked them."""
    if not slots:
        return []
    candidates = slots[:MAX_SLOTS_FOR_AI]

    provider = ai_provider.get_configured_provider()
    if provider is None:
        return rank_by_business_hours(candidates, tz_name)

    messages = [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(
            role="user",
            content=_build_ranking_prompt(candidates, context, participant_count, tz_name),
        ),
    ]
    try:
        response = await provider.chat(messages, temperature=0.7, max_tokens=1000)
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
        logger.warning("AI slot ranking failed, using business-hour ranking: %s", exc)
        return rank_by_business_hours(candidates, tz_name)

    rankings = validate_model_list(SlotRanking, parse_json_array(response.content))
    ranked = [
        _ranked(
            candidates[r.slotIndex - 1],
            r.score,
            r.reasoning or PARSE_FALLBACK_REASONING,
            r.confidenceLevel.lower(),
        )
        for r in rankings
        if r.slotIndex <= len(candidates)
    ]
    if not ranked:
        logger.warning("AI slot ranking returned no usable entries")
        return _parse_fallback(candidates)
    return ranked


# =============================================================================
# Entry point
# =============================================================================

def resolve_participant_ids(db: Session, org_id: UUID, emails: list[str]) -> list[UUID]:
    if not emails:
        return []
    lowered = [e.lower() for e in emails]
    rows = (
        db.query(User.id, User.email)
        .join(Membership, Membership.user_id == User.id)
        .filter(Membership.organization_id == org_id)
        .all()
    )
    return [row.id for row in rows if row.email.lower() in lowered]


async def suggest_time_slots(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    day: date,
    duration_minutes: int,
    preferred_time: PreferredTime | None = None,
    participant_emails: list[str] | None = None,
    context: str = "General meeting",
    buffer_minutes: int = 0,
    tz_name: str | None = None,
) -> dict:
    """Top ranked slots for the day plus how many candidates were considered."""
    participant_emails = participant_emails or []
    candidates = generate_time_slots(day, duration_minutes, preferred_time, tz_name)
    available = filter_by_availability(db, user_id, candidates)

    user_ids = [user_id] + [
        pid for pid in resolve_participant_ids(db, org_id, participant_emails) if pid != user_id
    ]
    available = filter_by_conflicts(db, user_ids, available, buffer_minutes)

    if not available:
        return {
            "slots": [],
            "total_candidates": len(candidates),
            "analysis_context": (
                "No available time slots found after filtering for availability and conflicts."
            ),
        }

    ranked = await rank_slots_with_ai(
        available, context, participant_count=len(participant_emails), tz_name=tz_name
    )
    top = ranked[:TOP_SUGGESTIONS]
    return {
        "slots": top,
        "total_candidates": len(candidates),
        "analysis_context": (
            f"Analyzed {len(candidates)} potential slots, filtered to {len(available)} "
            f"available options, and ranked the top {len(top)} using AI."
        ),
    }


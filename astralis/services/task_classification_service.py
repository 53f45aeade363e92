"""Task classification - turn a free-text request into a typed, prioritized task.

Pipeline: detect the intent (task type) -> extract entities (dates, times,
durations, participants, subject, location) -> score priority 1-5. With
an AI key configured the model decides type, intent and priority; the
regex rules below are the fallback and always supply the entities.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from astralis.db.enums import LogCategory, TaskSource, TaskType
from astralis.db.models import Task
from astralis.schemas.task import (
    IntentResult,
    ModelTaskClassification,
    ParsedDate,
    ParsedDuration,
    ParsedTime,
    TaskClassification,
    TaskEntities,
)
from astralis.services import agent_log_service, ai_provider
from astralis.services.ai_provider import ChatMessage
from astralis.services.ai_response_validation import parse_json_object, validate_model
from astralis.utils.time_windows import day_of_week, local_date, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 3
LOW_PRIORITY = 2
HIGH_PRIORITY = 4
CRITICAL_PRIORITY = 5
MAX_DURATION_MINUTES = 480

UNKNOWN_INTENT = "Unable to determine user intent from the provided content"

SYSTEM_PROMPT = (
    "You classify inbound scheduling requests for a small business. Respond with a "
    'single JSON object with keys: "task_type" (one of '
    + ", ".join(t.value for t in TaskType)
    + '), "intent" (one sentence), "priority" (1-5, 5 most urgent), '
    '"confidence" (0-1), "subject" (short meeting subject or null).'
)


@dataclass
class IntentRule:
    task_type: TaskType
    intent: str
    weight: float
    patterns: list[re.Pattern]


def _compile(*patterns: str) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# More specific intents first; ties keep the earlier rule
INTENT_RULES = [
    IntentRule(
        TaskType.CANCEL_MEETING,
        "User wants to cancel an existing meeting or appointment",
        0.95,
        _compile(
            r"\b(cancel|remove|delete)\s+(meeting|appointment|event|call)",
            r"\b(cancel|remove|delete)\s+(the|my|our)?\s*(meeting|appointment|event|call)",
            r"\bcancell?ing\s+(the|my|our)?\s*(meeting|appointment|event)",
        ),
    ),
    IntentRule(
        TaskType.RESCHEDULE_MEETING,
        "User wants to reschedule or move an existing meeting",
        0.9,
        _compile(
            r"\b(reschedule|re-schedule|move|postpone|push\s+back|change\s+(the\s+)?time)",
            r"\bchange\s+(the|my|our)?\s*(meeting|appointment|event)\s*(time|date)?",
            r"\bmove\s+(the|my|our)?\s*(meeting|appointment|event)",
        ),
    ),
    IntentRule(
        TaskType.SCHEDULE_MEETING,
        "User wants to schedule a new meeting or appointment",
        0.85,
        _compile(
            r"\b(schedule|book|set\s+up|arrange|plan|organize)\s+(a|an|the|my|our)?\s*"
            r"(meeting|appointment|call|session|event)",
            r"\b(schedule|book|set\s+up|arrange)\b",
            r"\blet'?s\s+(meet|schedule|set\s+up)",
            r"\bmeet(ing)?\s+with\b",
            r"\bset\s+up\s+(a|an)?\s*(call|meeting|appointment)",
            r"\bcan\s+(we|you)\s+(meet|schedule|set\s+up)",
        ),
    ),
    IntentRule(
        TaskType.CHECK_AVAILABILITY,
        "User wants to check availability or find open time slots",
        0.85,
        _compile(
            r"\b(available|free|openings?|availability)",
            r"\bwhen\s+(can|are)\s+(you|we|they)\s+(free|available|meet)",
            r"\bcheck\s+(my|your|their|the)?\s*availability",
            r"\bwhat\s+(times?|slots?)\s+(are|is)\s+(available|open|free)",
            r"\bfind\s+(a|some)?\s*(free|available|open)\s*(time|slot)",
        ),
    ),
    IntentRule(
        TaskType.UPDATE_TASK,
        "User wants to update or modify an existing task",
        0.85,
        _compile(
            r"\b(update|modify|edit|change)\s+(the|my|a|this)?\s*(task|todo|reminder|to-do)",
            r"\b(update|modify|edit)\s+(the|my)?\s*(due\s+date|deadline|priority)",
            r"\bmark\s+(as|the|this)?\s*(complete|done|finished)",
        ),
    ),
    IntentRule(
        TaskType.CREATE_TASK,
        "User wants to create a new task or reminder",
        0.75,
        _compile(
            r"\b(task|todo|to-do|reminder|to\s+do)\b",
            r"\b(remind\s+me|don'?t\s+forget|remember\s+to)",
            r"\b(add|create|make)\s+(a|an)?\s*(task|todo|reminder|to-do)",
            r"\bneed\s+to\b",
            r"\bhave\s+to\b",
        ),
    ),
    IntentRule(
        TaskType.INQUIRY,
        "User is asking a question or making an inquiry",
        0.7,
        _compile(
            r"^(what|how|who|when|where|why|which)\b",
            r"\?$",
            r"\b(tell\s+me|explain|describe|show\s+me)\b",
            r"\b(do\s+(you|we)|can\s+(you|we)|will\s+(you|we))\b.*\?",
        ),
    ),
]

LOW_PRIORITY_RE = _compile(
    r"\bno\s+rush\b",
    r"\bwhenever\b",
    r"\blow[\s-]priority\b",
    r"\bwhen\s+(you|they)\s+(can|have\s+time)\b",
    r"\bif\s+(you|they)\s+have\s+time\b",
    r"\bno\s+hurry\b",
    r"\bat\s+your\s+convenience\b",
    r"\bnot\s+urgent\b",
)
CRITICAL_RE = _compile(
    r"\burgent\b",
    r"\basap\b",
    r"\bemergency\b",
    r"\bcritical\b",
    r"\bimmediately\b",
    r"\bright\s+now\b",
    r"\btime[\s-]sensitive\b",
)
HIGH_PRIORITY_RE = _compile(
    r"\bimportant\b",
    r"\bpriority\b",
    r"\bhigh[\s-]priority\b",
    r"\bsoon\b",
    r"\bquickly\b",
)
BUSINESS_RE = _compile(
    r"\bclient\b",
    r"\bcustomer\b",
    r"\brevenue\b",
    r"\bdeal\b",
    r"\bcontract\b",
    r"\bsales\b",
    r"\bexecutive\b",
    r"\bc[\s-]?suite\b",
    r"\bceo\b",
    r"\bcfo\b",
    r"\bcto\b",
)
INDICATOR_RE = _compile(
    r"\burgent\b",
    r"\basap\b",
    r"\bemergency\b",
    r"\bcritical\b",
    r"\bimportant\b",
    r"\bpriority\b",
    r"\bhigh[\s-]priority\b",
    r"\btime[\s-]sensitive\b",
    r"\bimmediately\b",
    r"\bdeadline\b",
    r"\bsoon\b",
) + LOW_PRIORITY_RE


# =============================================================================
# Intent
# =============================================================================

def detect_intent(content: str) -> IntentResult:
    """
    Best-scoring intent rule for the text.

    A rule's confidence is its weight plus 0.05 per extra matching
    pattern, capped at 1.0.
    """
    text = content.strip().lower()
    best = IntentResult(task_type=TaskType.UNKNOWN, intent=UNKNOWN_INTENT, confidence=0.0)
    best_matches = 0

    for rule in INTENT_RULES:
        matches = sum(1 for pattern in rule.patterns if pattern.search(text))
        if not matches:
            continue
        confidence = round(min(rule.weight + (matches - 1) * 0.05, 1.0), 2)
        if confidence > best.confidence or (
            confidence == best.confidence and matches > best_matches
        ):
            best = IntentResult(task_type=rule.task_type, intent=rule.intent, confidence=confidence)
            best_matches = matches

    logger.debug("Detected intent %s (%.2f)", best.task_type.value, best.confidence)
    return best


# =============================================================================
# Entities
# =============================================================================

WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
MONTHS = [
    "jan(?:uary)?", "feb(?:ruary)?", "mar(?:ch)?", "apr(?:il)?", "may", "jun(?:e)?",
    "jul(?:y)?", "aug(?:ust)?", "sep(?:t(?:ember)?)?", "oct(?:ober)?", "nov(?:ember)?",
    "dec(?:ember)?",
]
_MONTH_ALT = "|".join(MONTHS)

RELATIVE_DATES = [
    (re.compile(r"\bday\s+after\s+tomorrow\b", re.IGNORECASE), 2),
    (re.compile(r"\btoday\b", re.IGNORECASE), 0),
    (re.compile(r"\btomorrow\b", re.IGNORECASE), 1),
    (re.compile(r"\byesterday\b", re.IGNORECASE), -1),
    (re.compile(r"\bnext\s+week\b", re.IGNORECASE), 7),
    (re.compile(r"\bthis\s+week\b", re.IGNORECASE), 0),
]
WEEKDAY_RE = re.compile(
    r"\b(?:(next|this|coming)\s+)?(sunday|monday|tuesday|wednesday|thursday|friday|saturday)\b",
    re.IGNORECASE,
)
US_DATE_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b")
ISO_DATE_RE = re.compile(r"\b(\d{4})[/-](\d{1,2})[/-](\d{1,2})\b")
MONTH_DAY_RE = re.compile(
    rf"\b({_MONTH_ALT})\s+(\d{{1,2}})(?:st|nd|rd|th)?(?:,?\s+(\d{{4}}))?\b"
    rf"|\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTH_ALT})(?:,?\s+(\d{{4}}))?\b",
    re.IGNORECASE,
)
IN_DAYS_RE = re.compile(r"\bin\s+(\d+)\s+(days?|weeks?)\b", re.IGNORECASE)

TIME_OF_DAY = [
    (re.compile(r"\b(early\s+)?morning\b", re.IGNORECASE), "09:00"),
    (re.compile(r"\bmid[\s-]?morning\b", re.IGNORECASE), "10:30"),
    (re.compile(r"\b(around\s+)?noon\b", re.IGNORECASE), "12:00"),
    (re.compile(r"\bmidday\b", re.IGNORECASE), "12:00"),
    (re.compile(r"\b(early\s+)?afternoon\b", re.IGNORECASE), "14:00"),
    (re.compile(r"\blate\s+afternoon\b", re.IGNORECASE), "16:00"),
    (re.compile(r"\b(early\s+)?evening\b", re.IGNORECASE), "18:00"),
    (re.compile(r"\bend\s+of\s+(the\s+)?day\b", re.IGNORECASE), "17:00"),
    (re.compile(r"\beod\b", re.IGNORECASE), "17:00"),
]
MERIDIEM = r"(am|pm|a\.m\.|p\.m\.)(?![a-z])"
CLOCK_MERIDIEM_RE = re.compile(rf"\b(\d{{1,2}}):(\d{{2}})\s*{MERIDIEM}", re.IGNORECASE)
HOUR_MERIDIEM_RE = re.compile(rf"(?<![:\d])\b(\d{{1,2}})\s*{MERIDIEM}", re.IGNORECASE)
CLOCK_24H_RE = re.compile(rf"\b([01]?\d|2[0-3]):([0-5]\d)\b(?!\s*{MERIDIEM})", re.IGNORECASE)

DURATIONS = [
    (re.compile(r"(\d+)[\s-]*(minutes?|mins?)\b", re.IGNORECASE), lambda m: int(m.group(1))),
    (
        re.compile(r"(\d+(?:\.\d+)?)[\s-]*(hours?|hrs?)\b", re.IGNORECASE),
        lambda m: round(float(m.group(1)) * 60),
    ),
    (re.compile(r"\bhalf\s+(an?\s+)?hour\b", re.IGNORECASE), lambda m: 30),
    (re.compile(r"\bquarter\s+(of\s+)?(an?\s+)?hour\b", re.IGNORECASE), lambda m: 15),
    (
        re.compile(r"(\d+)\s+and\s+(a\s+)?half\s+(hours?|hrs?)\b", re.IGNORECASE),
        lambda m: int(m.group(1)) * 60 + 30,
    ),
    (re.compile(r"\b(\d+)\s*(m|min)\b(?!\w)", re.IGNORECASE), lambda m: int(m.group(1))),
]

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
WITH_NAMES_RE = re.compile(r"\bwith\s+([A-Z][a-z]+(?:\s+(?:and|&)\s+[A-Z][a-z]+)*)")
INVITE_RE = re.compile(
    r"\b(?i:invite|include|add|cc)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?|(?i:the\s+team|team|everyone))"
)
SUBJECT_RES = [
    re.compile(r"\b(?:about|regarding|re:|for|to\s+discuss)\s*[:\s]?\s*[\"']?([^\"'\n.!?]{5,60})[\"']?", re.IGNORECASE),
    re.compile(r"\b(?:meeting|call|session)\s+(?:about|on|for)\s+[\"']?([^\"'\n.!?]{5,60})[\"']?", re.IGNORECASE),
    re.compile(r"[\"']([^\"'\n]{5,60})[\"']\s*(?:meeting|call|session)?", re.IGNORECASE),
]
EMAIL_SUBJECT_RE = re.compile(r"^\s*subject:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
URL_RE = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)
LOCATION_RES = [
    re.compile(
        r"\b(?:at|in|via|on)\s+(zoom|teams|meet|google\s+meet|skype|webex|conference\s+room\s*\w*"
        r"|room\s*\d*\w*|office|the\s+office|my\s+office|their\s+office)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bvirtual(?:ly)?\b", re.IGNORECASE),
    re.compile(r"\bin[\s-]person\b", re.IGNORECASE),
    re.compile(r"\bon[\s-]site\b", re.IGNORECASE),
    re.compile(r"\b(conference\s+room|meeting\s+room|board\s+room)\s*(\w+|\d+)?\b", re.IGNORECASE),
]


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_index(name: str) -> int | None:
    for i, pattern in enumerate(MONTHS):
        if re.fullmatch(pattern, name, re.IGNORECASE):
            return i + 1
    return None


def extract_dates(content: str, today: date) -> list[ParsedDate]:
    dates = []
    for pattern, offset in RELATIVE_DATES:
        match = pattern.search(content)
        if match:
            dates.append(ParsedDate(raw=match.group(0), parsed=today + timedelta(days=offset)))

    current = day_of_week(today)
    for match in WEEKDAY_RE.finditer(content):
        modifier = (match.group(1) or "").lower()
        days_ahead = WEEKDAYS.index(match.group(2).lower()) - current
        if days_ahead <= 0 or modifier == "next":
            days_ahead += 7
        if modifier == "this" and days_ahead > 7:
            days_ahead -= 7
        dates.append(ParsedDate(raw=match.group(0), parsed=today + timedelta(days=days_ahead)))

    for match in US_DATE_RE.finditer(content):
        parsed = _safe_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))
        if parsed:
            dates.append(ParsedDate(raw=match.group(0), parsed=parsed))
    for match in ISO_DATE_RE.finditer(content):
        parsed = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            dates.append(ParsedDate(raw=match.group(0), parsed=parsed))

    for match in MONTH_DAY_RE.finditer(content):
        if match.group(1):
            month_name, day_str, year_str = match.group(1), match.group(2), match.group(3)
        else:
            day_str, month_name, year_str = match.group(4), match.group(5), match.group(6)
        month = _month_index(month_name)
        year = int(year_str) if year_str else today.year
        parsed = _safe_date(year, month, int(day_str)) if month else None
        if parsed:
            dates.append(ParsedDate(raw=match.group(0), parsed=parsed))

    for match in IN_DAYS_RE.finditer(content):
        amount = int(match.group(1))
        days = amount * 7 if match.group(2).lower().startswith("week") else amount
        dates.append(ParsedDate(raw=match.group(0), parsed=today + timedelta(days=days)))
    return dates


def _to_24h(hours: int, meridiem: str) -> int:
    meridiem = meridiem.lower().replace(".", "")
    if meridiem == "pm" and hours < 12:
        return hours + 12
    if meridiem == "am" and hours == 12:
        return 0
    return hours


def extract_times(content: str) -> list[ParsedTime]:
    times = []
    for pattern, hhmm in TIME_OF_DAY:
        match = pattern.search(content)
        if match:
            times.append(ParsedTime(raw=match.group(0), parsed=hhmm))

    for match in CLOCK_MERIDIEM_RE.finditer(content):
        hours = _to_24h(int(match.group(1)), match.group(3))
        times.append(ParsedTime(raw=match.group(0), parsed=f"{hours:02d}:{match.group(2)}"))
    for match in HOUR_MERIDIEM_RE.finditer(content):
        hours = _to_24h(int(match.group(1)), match.group(2))
        times.append(ParsedTime(raw=match.group(0), parsed=f"{hours:02d}:00"))
    for match in CLOCK_24H_RE.finditer(content):
        times.append(
            ParsedTime(raw=match.group(0), parsed=f"{int(match.group(1)):02d}:{match.group(2)}")
        )
    return times


def extract_durations(content: str) -> list[ParsedDuration]:
    durations = []
    seen = set()
    for pattern, to_minutes in DURATIONS:
        for match in pattern.finditer(content):
            minutes = to_minutes(match)
            key = (match.start(), minutes)
            if 0 < minutes <= MAX_DURATION_MINUTES and key not in seen:
                seen.add(key)
                durations.append(ParsedDuration(raw=match.group(0), minutes=minutes))
    return durations


def extract_participants(content: str) -> list[str]:
    participants: list[str] = []

    def add(name: str) -> None:
        name = name.strip()
        if name and name not in participants:
            participants.append(name)

    for match in EMAIL_RE.finditer(content):
        add(match.group(0).lower())
    for match in WITH_NAMES_RE.finditer(content):
        for name in re.split(r"\s+(?:and|&)\s+", match.group(1)):
            add(name)
    for match in INVITE_RE.finditer(content):
        add(match.group(1))
    return participants


def extract_subject(content: str) -> str | None:
    for pattern in SUBJECT_RES:
        match = pattern.search(content)
        if match:
            subject = match.group(1).strip()
            if len(subject) >= 5:
                return subject
    return None


def extract_location(content: str) -> str | None:
    url = URL_RE.search(content)
    if url:
        return url.group(0)
    for pattern in LOCATION_RES:
        match = pattern.search(content)
        if match:
            return match.group(1) if match.groups() and match.group(1) else match.group(0)
    return None


def extract_priority_indicators(content: str) -> list[str]:
    text = content.lower()
    return [match.group(0) for match in (p.search(text) for p in INDICATOR_RE) if match]


def extract_entities(
    content: str, today: date | None = None, source: TaskSource = TaskSource.API
) -> TaskEntities:
    """Dates, times, durations, participants, subject and location found in the text."""
    today = today or utcnow().date()
    subject = None
    if source == TaskSource.EMAIL:
        header = EMAIL_SUBJECT_RE.search(content)
        if header:
            subject = header.group(1).strip()
    return TaskEntities(
        dates=extract_dates(content, today),
        times=extract_times(content),
        duration=extract_durations(content),
        participants=extract_participants(content),
        subject=subject or extract_subject(content),
        location=extract_location(content),
        priority_indicators=extract_priority_indicators(content),
    )


# =============================================================================
# Priority
# =============================================================================

def calculate_priority(content: str, entities: TaskEntities, today: date | None = None) -> int:
    """
    Priority 1-5 from wording.

    Low-priority phrasing wins outright (2), then critical phrasing (5).
    Otherwise start at 3 (4 for "important" style words) and add one for
    business context and one for a date of today or tomorrow.
    """
    if not content:
        return DEFAULT_PRIORITY
    text = content.lower()
    if any(p.search(text) for p in LOW_PRIORITY_RE):
        return LOW_PRIORITY
    if any(p.search(text) for p in CRITICAL_RE):
        return CRITICAL_PRIORITY

    priority = DEFAULT_PRIORITY
    if any(p.search(text) for p in HIGH_PRIORITY_RE):
        priority = HIGH_PRIORITY
    if any(p.search(text) for p in BUSINESS_RE):
        priority = min(priority + 1, CRITICAL_PRIORITY)

    today = today or utcnow().date()
    if any(d.parsed in (today, today + timedelta(days=1)) for d in entities.dates):
        priority = min(priority + 1, CRITICAL_PRIORITY)
    return priority


# =============================================================================
# Classification
# =============================================================================

class ClassificationFailedError(Exception):
    """The model call or its output could not be used."""
    pass


async def classify_with_ai(content: str, source: TaskSource) -> ModelTaskClassification:
    provider = ai_provider.get_configured_provider()
    if provider is None:
        raise ClassificationFailedError("AI provider not configured")

    messages = [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=f"Channel: {source.value}\n\nRequest:\n{content}"),
    ]
    try:
        response = await provider.chat(messages, temperature=0.2, max_tokens=400)
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as exc:
        raise ClassificationFailedError(str(exc)) from exc

    result = validate_model(ModelTaskClassification, parse_json_object(response.content))
    if result is None:
        raise ClassificationFailedError("Classification output was not valid JSON")
    return result


async def classify_content(
    content: str, source: TaskSource = TaskSource.API, today: date | None = None
) -> TaskClassification:
    """Classify free text. Model failures fall back to the keyword rules."""
    started = time.monotonic()
    entities = extract_entities(content, today, source)

    try:
        model = await classify_with_ai(content, source)
    except ClassificationFailedError as exc:
        logger.info("Keyword classification used: %s", exc)
        intent = detect_intent(content)
        task_type, intent_text, confidence = intent.task_type, intent.intent, intent.confidence
        priority = calculate_priority(content, entities, today)
        method = "keyword"
    else:
        task_type, intent_text, confidence = model.task_type, model.intent, model.confidence
        priority = model.priority
        if model.subject and not entities.subject:
            entities.subject = model.subject
        method = "ai"

    return TaskClassification(
        task_type=task_type,
        intent=intent_text or UNKNOWN_INTENT,
        entities=entities,
        priority=priority,
        confidence=confidence,
        method=method,
        source=source,
        processing_time_ms=int((time.monotonic() - started) * 1000),
    )


def task_content(task: Task) -> str:
    return "\n".join(part for part in (task.title, task.description) if part)


async def classify_task(
    db: Session, org_id: UUID, task: Task, tz_name: str | None = None
) -> TaskClassification:
    """Classify a stored task, then save the result on it and adopt its priority."""
    today = local_date(utcnow(), tz_name)
    result = await classify_content(task_content(task), TaskSource(task.source), today)

    task.data = {
        **(task.data or {}),
        "classification": {
            **result.model_dump(mode="json"),
            "classified_at": utcnow().isoformat(),
        },
    }
    task.priority = result.priority
    agent_log_service.info(
        db,
        LogCategory.CLASSIFICATION,
        "task_classified",
        f"Task {task.id} classified as {result.task_type.value}",
        org_id=org_id,
        task_id=str(task.id),
        duration_ms=result.processing_time_ms,
        metadata={
            "task_type": result.task_type.value,
            "priority": result.priority,
            "confidence": result.confidence,
            "method": result.method,
        },
    )
    db.commit()
    db.refresh(task)
    return result

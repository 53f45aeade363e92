"""Pydantic schemas for the scheduling agent, decisions and logs."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from astralis.db.enums import (
    DecisionStatus,
    DecisionType,
    InputSource,
    LogCategory,
    LogLevel,
    PreferredTime,
)


# =============================================================================
# Slot suggestion
# =============================================================================

class SuggestRequest(BaseModel):
    user_id: UUID | None = None
    duration: int = Field(..., ge=15, le=480, description="Minutes")
    preferred_date: date | None = Field(None, description="Defaults to tomorrow")
    preferred_time: PreferredTime | None = None
    participants: list[EmailStr] = Field(default_factory=list)
    context: str = Field("General meeting", max_length=500)
    buffer_minutes: int = Field(0, ge=0, le=60)


class SuggestedSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    score: int
    reasoning: str
    confidence: str


class OverbookingWarning(BaseModel):
    is_overbooked: bool
    event_count: int
    total_hours: float
    percentage_booked: int
    message: str


class SuggestMetadata(BaseModel):
    user_id: UUID
    date: str
    duration: int
    preferred_time: str
    participant_count: int


class SuggestResponse(BaseModel):
    slots: list[SuggestedSlot]
    total_candidates: int
    analysis_context: str
    overbooking_warning: OverbookingWarning | None = None
    metadata: SuggestMetadata


class AvailabilityBlock(BaseModel):
    date: str
    start: datetime
    end: datetime
    duration_minutes: int


class DayAvailability(BaseModel):
    date: str
    day_of_week: str
    available_blocks: list[AvailabilityBlock]
    total_available_minutes: int
    scheduled_events: int


class AvailabilitySummary(BaseModel):
    total_days: int
    total_available_minutes: int
    total_available_hours: float
    total_scheduled_events: int
    average_available_minutes_per_day: int


class AvailabilityResponse(BaseModel):
    user_id: UUID
    start_date: date
    end_date: date
    availability: list[DayAvailability]
    summary: AvailabilitySummary


# =============================================================================
# Calendar chat
# =============================================================================

class ChatTurn(BaseModel):
    role: str
    content: str


class CalendarChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    conversation_history: list[ChatTurn] = Field(default_factory=list)
    confirmed: bool = False
    pending_action: dict | None = None


class CalendarChatResponse(BaseModel):
    message: str
    data: dict | list | None = None
    requires_confirmation: bool = False
    action: dict | None = None


# =============================================================================
# Decisions
# =============================================================================

class DecisionRead(BaseModel):
    id: UUID
    task_id: str | None
    input_source: InputSource
    decision_type: DecisionType
    status: DecisionStatus
    confidence: float
    reasoning: str | None
    input_data: dict
    actions: list
    result: dict | None
    error_message: str | None
    execution_time_ms: int | None
    executed_at: datetime | None
    reviewed_by_user_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class DecisionListResponse(BaseModel):
    decisions: list[DecisionRead]
    pagination: Pagination


class DecisionRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


# =============================================================================
# Logs
# =============================================================================

class AgentLogRead(BaseModel):
    id: UUID
    level: LogLevel
    category: LogCategory
    action: str
    message: str
    task_id: str | None
    user_id: UUID | None
    duration_ms: int | None
    log_metadata: dict | None = Field(None, serialization_alias="metadata")
    error: dict | None
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}


class AgentLogListResponse(BaseModel):
    logs: list[AgentLogRead]
    pagination: Pagination


class AgentLogStats(BaseModel):
    period_hours: int
    total: int
    by_level: dict[str, int]
    by_category: dict[str, int]
    error_rate: float
    avg_duration_ms: float | None

"""Pydantic schemas for events, availability rules and reminders."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from astralis.db.enums import EventStatus, ReminderStatus
from astralis.utils.time_windows import parse_hhmm


# =============================================================================
# Events
# =============================================================================

class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime
    end_time: datetime
    location: str | None = Field(None, max_length=255)
    participant_emails: list[EmailStr] = Field(default_factory=list)


class EventUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = Field(None, max_length=255)
    participant_emails: list[EmailStr] | None = None
    status: EventStatus | None = None


class ReminderRead(BaseModel):
    id: UUID
    event_id: UUID
    reminder_time: datetime
    status: ReminderStatus
    sent_at: datetime | None
    error_message: str | None
    retry_count: int

    model_config = {"from_attributes": True}


class EventRead(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    description: str | None
    start_time: datetime
    end_time: datetime
    location: str | None
    participant_emails: list[str]
    status: EventStatus
    created_at: datetime
    updated_at: datetime
    reminders: list[ReminderRead] = Field(default_factory=list)

    model_config = {"from_attributes": True}


# =============================================================================
# Availability rules
# =============================================================================

class _RuleTimes(BaseModel):
    @field_validator("start_time", "end_time", check_fields=False)
    @classmethod
    def _valid_hhmm(cls, value: str | None) -> str | None:
        if value is not None:
            parse_hhmm(value)
        return value


class AvailabilityRuleCreate(_RuleTimes):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    is_active: bool = True
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _start_before_end(self):
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError("Start time must be before end time")
        return self


class AvailabilityRuleUpdate(_RuleTimes):
    day_of_week: int | None = Field(None, ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    is_active: bool | None = None
    timezone: str | None = None


class AvailabilityRuleRead(BaseModel):
    id: UUID
    user_id: UUID
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool
    timezone: str

    model_config = {"from_attributes": True}


class QuickConflictRequest(BaseModel):
    start_time: datetime
    end_time: datetime


class QuickConflictResponse(BaseModel):
    has_conflict: bool


# =============================================================================
# Conflict detection
# =============================================================================

class ConflictCheckRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    participant_emails: list[EmailStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ConflictItem(BaseModel):
    event_id: UUID
    event_title: str
    start_time: datetime
    end_time: datetime
    conflict_score: int
    conflict_type: str


class ConflictCheckResponse(BaseModel):
    has_conflict: bool
    conflicts: list[ConflictItem]
    availability_issues: list[str]
    severity: str
    alternatives: list[dict] = Field(default_factory=list)

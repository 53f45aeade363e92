"""Pydantic schemas for intake requests."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from astralis.db.enums import IntakeCategory, IntakeSource, IntakeStatus


class IntakeCreate(BaseModel):
    source: IntakeSource = IntakeSource.FORM
    title: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    request_data: dict = Field(default_factory=dict)
    priority: int = Field(0, ge=0, le=10)


class IntakeUpdate(BaseModel):
    title: str | None = Field(None, min_length=2, max_length=255)
    description: str | None = None
    request_data: dict | None = None
    status: IntakeStatus | None = None
    priority: int | None = Field(None, ge=0, le=10)


class IntakeAssign(BaseModel):
    pipeline_id: UUID
    stage_id: UUID | None = None


class IntakeRead(BaseModel):
    id: UUID
    source: IntakeSource
    title: str
    description: str | None
    request_data: dict
    status: IntakeStatus
    priority: int
    assigned_pipeline_id: UUID | None
    ai_routing_meta: dict | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IntakeClassification(BaseModel):
    """Structured output expected from the routing model."""

    category: IntakeCategory = IntakeCategory.GENERAL
    priority: int = Field(3, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    suggested_pipeline: str | None = None
    confidence: float = Field(0.5, ge=0, le=1)
    reasoning: str | None = None

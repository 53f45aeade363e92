"""Pydantic schemas for pipelines, stages and pipeline items."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from astralis.db.enums import PipelineItemStatus


class StageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    order: int | None = Field(None, ge=0)
    color: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")


class StageUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    order: int | None = Field(None, ge=0)
    color: str | None = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")


class StageRead(BaseModel):
    id: UUID
    pipeline_id: UUID
    name: str
    order: int
    color: str | None

    model_config = {"from_attributes": True}


class PipelineCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str | None = None
    stages: list[StageCreate] = Field(default_factory=list)


class PipelineUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=100)
    description: str | None = None
    is_active: bool | None = None


class PipelineRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    stages: list[StageRead]

    model_config = {"from_attributes": True}


class PipelineItemCreate(BaseModel):
    title: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    stage_id: UUID | None = None
    priority: int = Field(0, ge=0, le=4)
    status: PipelineItemStatus = PipelineItemStatus.NOT_STARTED
    due_date: date | None = None
    tags: list[str] = Field(default_factory=list)
    assigned_to_user_id: UUID | None = None
    progress: int = Field(0, ge=0, le=100)
    data: dict = Field(default_factory=dict)


class PipelineItemUpdate(BaseModel):
    title: str | None = Field(None, min_length=2, max_length=255)
    description: str | None = None
    stage_id: UUID | None = None
    priority: int | None = Field(None, ge=0, le=4)
    status: PipelineItemStatus | None = None
    due_date: date | None = None
    tags: list[str] | None = None
    assigned_to_user_id: UUID | None = None
    progress: int | None = Field(None, ge=0, le=100)
    data: dict | None = None


class PipelineItemRead(BaseModel):
    id: UUID
    pipeline_id: UUID
    stage_id: UUID | None
    title: str
    description: str | None
    priority: int
    status: PipelineItemStatus
    due_date: date | None
    tags: list[str]
    assigned_to_user_id: UUID | None
    progress: int
    data: dict
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

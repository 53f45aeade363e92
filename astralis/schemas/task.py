"""Task request and response bodies."""

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from astralis.db.enums import TaskSource, TaskStatus, TaskType

Title = Annotated[str, Field(min_length=1, max_length=255)]
Priority = Annotated[int, Field(ge=1, le=5)]
RefKey = Annotated[str, Field(max_length=100)]


class TaskCreate(BaseModel):
    title: Title
    description: str | None = None
    source: TaskSource = TaskSource.API
    priority: Priority = 3
    pipeline_key: RefKey | None = None
    stage_key: RefKey | None = None
    tags: list[str] = []
    data: dict = {}
    assigned_to_user_id: UUID | None = None
    due_at: datetime | None = None


class TaskUpdate(BaseModel):
    """Partial update; status changes must follow the task state machine."""

    title: Title | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    pipeline_key: RefKey | None = None
    stage_key: RefKey | None = None
    tags: list[str] | None = None
    data: dict | None = None
    assigned_to_user_id: UUID | None = None
    due_at: datetime | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    source: TaskSource
    status: TaskStatus
    priority: int
    pipeline_key: str | None
    stage_key: str | None
    tags: list[str]
    data: dict
    assigned_to_user_id: UUID | None
    created_by_user_id: UUID | None
    due_at: datetime | None
    created_at: datetime
    updated_at: datetime


class TaskListResponse(BaseModel):
    items: list[TaskRead]
    total: int
    page: int
    per_page: int
    pages: int


# =============================================================================
# Classification
# =============================================================================

class ParsedDate(BaseModel):
    raw: str
    parsed: date


class ParsedTime(BaseModel):
    raw: str
    parsed: str = Field(..., description="HH:MM, 24-hour")


class ParsedDuration(BaseModel):
    raw: str
    minutes: int


class TaskEntities(BaseModel):
    """Details pulled out of free text."""

    dates: list[ParsedDate] = []
    times: list[ParsedTime] = []
    duration: list[ParsedDuration] = []
    participants: list[str] = []
    subject: str | None = None
    location: str | None = None
    priority_indicators: list[str] = []


class IntentResult(BaseModel):
    task_type: TaskType
    intent: str
    confidence: float


class ModelTaskClassification(BaseModel):
    """Structured output expected from the classification model."""

    task_type: TaskType = TaskType.UNKNOWN
    intent: str = ""
    priority: int = Field(3, ge=1, le=5)
    confidence: float = Field(0.5, ge=0, le=1)
    subject: str | None = None


class TaskClassification(BaseModel):
    task_type: TaskType
    intent: str
    entities: TaskEntities
    priority: Priority
    confidence: float
    method: str = Field(..., description="ai or keyword")
    source: TaskSource
    processing_time_ms: int = 0


class TaskAnalyzeRequest(BaseModel):
    content: Annotated[str, Field(min_length=1, max_length=5000)]
    source: TaskSource = TaskSource.API

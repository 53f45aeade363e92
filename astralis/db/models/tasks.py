"""Tasks."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from astralis.db.base import Base
from astralis.db.enums import TaskSource, TaskStatus
from astralis.utils.time_windows import utcnow


class Task(Base):
    """A unit of work captured from a form, email, chat, API call or phone call."""

    __tablename__ = "tasks"
    __table_args__ = (Index("idx_tasks_org_status", "organization_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(
        String(20), default=TaskSource.API.value, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=TaskStatus.NEW.value, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    pipeline_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    stage_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tags: Mapped[list] = mapped_column(default=list, nullable=False)
    data: Mapped[dict] = mapped_column(default=dict, nullable=False)
    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

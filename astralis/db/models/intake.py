"""Intake items awaiting routing."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from astralis.db.base import Base
from astralis.db.enums import IntakeSource, IntakeStatus
from astralis.utils.time_windows import utcnow


class IntakeRequest(Base):
    """
    An inbound request waiting to be routed into a pipeline.

    ai_routing_meta keeps the classifier output (or the manual
    assignment record) that produced the current routing.
    """

    __tablename__ = "intake_requests"
    __table_args__ = (
        Index("idx_intake_org_status", "organization_id", "status"),
        Index("idx_intake_org_priority", "organization_id", "priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(
        String(20), default=IntakeSource.FORM.value, nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_data: Mapped[dict] = mapped_column(default=dict, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=IntakeStatus.NEW.value, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    assigned_pipeline_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("pipelines.id", ondelete="SET NULL"), nullable=True
    )
    ai_routing_meta: Mapped[dict | None] = mapped_column(nullable=True)
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

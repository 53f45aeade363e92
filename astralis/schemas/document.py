"""Pydantic schemas for documents."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from astralis.db.enums import DocumentStatus


class DocumentRead(BaseModel):
    id: UUID
    file_name: str
    file_size: int
    mime_type: str
    checksum_sha256: str
    status: DocumentStatus
    title: str | None
    description: str | None
    tags: list[str]
    pipeline_id: UUID | None
    uploaded_by_user_id: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DocumentDownloadResponse(BaseModel):
    download_url: str
    file_name: str
    expires_in_seconds: int

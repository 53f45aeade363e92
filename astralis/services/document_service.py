"""Document service - uploads with validation, checksums and object storage."""

from __future__ import annotations

import hashlib
import logging
import uuid
from pathlib import Path
from typing import BinaryIO

import boto3
from botocore.exceptions import ClientError
from sqlalchemy.orm import Session

from astralis.core.config import settings
from astralis.db.enums import DocumentStatus
from astralis.db.models import Document
from astralis.utils.time_windows import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/tiff",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
}
MAX_FILE_SIZE_BYTES = 25 * 1024 * 1024  # 25 MB
SIGNED_URL_EXPIRY_SECONDS = 300


# =============================================================================
# Storage
# =============================================================================
# Keys look like "{org_id}/documents/{document_id}.{ext}" in both backends.

def _s3():
    return boto3.client("s3", region_name=settings.S3_REGION or None)


def _use_s3() -> bool:
    return settings.STORAGE_BACKEND == "s3"


def _local_path(storage_key: str) -> Path:
    return Path(settings.LOCAL_STORAGE_PATH) / storage_key


def store_file(storage_key: str, file: BinaryIO) -> None:
    file.seek(0)
    if _use_s3():
        _s3().upload_fileobj(file, settings.S3_BUCKET, storage_key)
        return
    target = _local_path(storage_key)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(file.read())


def generate_download_url(storage_key: str) -> str:
    """Short-lived presigned GET for S3; the filesystem path for local storage."""
    if not _use_s3():
        return str(_local_path(storage_key))
    try:
        return _s3().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.S3_BUCKET, "Key": storage_key},
            ExpiresIn=SIGNED_URL_EXPIRY_SECONDS,
        )
    except ClientError:
        logger.exception("Presigning %s failed", storage_key)
        raise


def calculate_checksum(file: BinaryIO) -> str:
    """sha256 hex digest; leaves the stream rewound."""
    file.seek(0)
    digest = hashlib.file_digest(file, "sha256").hexdigest()
    file.seek(0)
    return digest


def validate_file(content_type: str, file_size: int) -> str | None:
    """Return an error message, or None for an acceptable file."""
    if content_type not in ALLOWED_MIME_TYPES:
        return f"Content type '{content_type}' not allowed"
    if file_size <= 0:
        return "File is empty"
    if file_size > MAX_FILE_SIZE_BYTES:
        return f"File size exceeds {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB limit"
    return None


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"


# =============================================================================
# Service Functions
# =============================================================================

def upload_document(
    db: Session,
    org_id: uuid.UUID,
    user_id: uuid.UUID | None,
    filename: str,
    content_type: str,
    file: BinaryIO,
    file_size: int,
    title: str | None = None,
    description: str | None = None,
    pipeline_id: uuid.UUID | None = None,
    tags: list[str] | None = None,
) -> Document:
    error = validate_file(content_type, file_size)
    if error:
        raise ValueError(error)

    checksum = calculate_checksum(file)
    document_id = uuid.uuid4()
    storage_key = f"{org_id}/documents/{document_id}.{_extension(filename)}"
    store_file(storage_key, file)

    document = Document(
        id=document_id,
        organization_id=org_id,
        uploaded_by_user_id=user_id,
        pipeline_id=pipeline_id,
        file_name=filename,
        file_size=file_size,
        mime_type=content_type,
        storage_key=storage_key,
        checksum_sha256=checksum,
        status=DocumentStatus.COMPLETED.value,
        title=title,
        description=description,
        tags=tags or [],
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    logger.info("Document %s stored (%s bytes)", document.id, file_size)
    return document


def list_documents(
    db: Session,
    org_id: uuid.UUID,
    status: DocumentStatus | None = None,
    pipeline_id: uuid.UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Document]:
    """List documents (excludes deleted), newest first."""
    query = db.query(Document).filter(
        Document.organization_id == org_id,
        Document.deleted_at.is_(None),
    )
    if status:
        query = query.filter(Document.status == status.value)
    if pipeline_id:
        query = query.filter(Document.pipeline_id == pipeline_id)
    return query.order_by(Document.created_at.desc()).offset(offset).limit(limit).all()


def get_document(db: Session, org_id: uuid.UUID, document_id: uuid.UUID) -> Document | None:
    return (
        db.query(Document)
        .filter(
            Document.organization_id == org_id,
            Document.id == document_id,
            Document.deleted_at.is_(None),
        )
        .first()
    )


def get_download_url(db: Session, org_id: uuid.UUID, document_id: uuid.UUID) -> tuple[Document, str] | None:
    document = get_document(db, org_id, document_id)
    if not document:
        return None
    return document, generate_download_url(document.storage_key)


def soft_delete_document(db: Session, org_id: uuid.UUID, document_id: uuid.UUID) -> bool:
    document = get_document(db, org_id, document_id)
    if not document:
        return False
    document.deleted_at = utcnow()
    db.commit()
    return True

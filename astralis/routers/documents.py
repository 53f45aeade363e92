"""Documents router - multipart upload, listing, download links, soft delete."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from astralis.core.deps import get_current_session, get_db, require_csrf_header
from astralis.db.enums import DocumentStatus
from astralis.schemas.auth import UserSession
from astralis.schemas.document import DocumentDownloadResponse, DocumentRead
from astralis.services import document_service, pipeline_service

router = APIRouter(tags=["Documents"])


@router.post(
    "",
    response_model=DocumentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def upload_document(
    file: UploadFile = File(...),
    title: str | None = Form(None),
    description: str | None = Form(None),
    pipeline_id: UUID | None = Form(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if pipeline_id and not pipeline_service.get_pipeline(db, session.org_id, pipeline_id):
        raise HTTPException(status_code=404, detail="Pipeline not found")

    file.file.seek(0, 2)
    file_size = file.file.tell()
    file.file.seek(0)

    try:
        return document_service.upload_document(
            db,
            session.org_id,
            session.user_id,
            filename=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
            file=file.file,
            file_size=file_size,
            title=title,
            description=description,
            pipeline_id=pipeline_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=list[DocumentRead])
def list_documents(
    status: DocumentStatus | None = None,
    pipeline_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return document_service.list_documents(
        db, session.org_id, status=status, pipeline_id=pipeline_id, limit=limit, offset=offset
    )


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    document = document_service.get_document(db, session.org_id, document_id)
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@router.get("/{document_id}/download", response_model=DocumentDownloadResponse)
def download_document(
    document_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    found = document_service.get_download_url(db, session.org_id, document_id)
    if not found:
        raise HTTPException(status_code=404, detail="Document not found")
    document, url = found
    return DocumentDownloadResponse(
        download_url=url,
        file_name=document.file_name,
        expires_in_seconds=document_service.SIGNED_URL_EXPIRY_SECONDS,
    )


@router.delete("/{document_id}", status_code=204, dependencies=[Depends(require_csrf_header)])
def delete_document(
    document_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if not document_service.soft_delete_document(db, session.org_id, document_id):
        raise HTTPException(status_code=404, detail="Document not found")

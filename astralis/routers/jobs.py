"""Jobs router - inspect and retry background jobs (developer only)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from astralis.core.deps import get_db, require_csrf_header, require_roles
from astralis.db.enums import JobStatus, JobType, Role
from astralis.schemas.auth import UserSession
from astralis.schemas.job import JobRead
from astralis.services import job_service

router = APIRouter(tags=["Jobs"])

_developer = require_roles([Role.DEVELOPER, Role.ADMIN])


@router.get("", response_model=list[JobRead])
def list_jobs(
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    session: UserSession = Depends(_developer),
):
    return job_service.list_jobs(
        db, org_id=session.org_id, status=status, job_type=job_type, limit=limit
    )


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_developer),
):
    job = job_service.get_job(db, job_id, org_id=session.org_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post(
    "/{job_id}/retry",
    response_model=JobRead,
    dependencies=[Depends(require_csrf_header)],
)
def retry_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(_developer),
):
    job = job_service.get_job(db, job_id, org_id=session.org_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    try:
        return job_service.retry_job(db, job)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

"""Job service - the DB-backed queue behind reminders, notifications and routing.

A job is due when it is pending and its run_at has passed. The worker
marks it running (one attempt), then completed or failed; failures go
back to pending until max_attempts is used up.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from astralis.db.enums import JobStatus, JobType
from astralis.db.models import Job
from astralis.utils.time_windows import utcnow


def schedule_job(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """Queue a job (now unless run_at is given). A repeated idempotency_key returns the first job."""
    if idempotency_key:
        already_queued = db.query(Job).filter(Job.idempotency_key == idempotency_key).first()
        if already_queued:
            return already_queued

    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """Due jobs, oldest run_at first."""
    return (
        db.query(Job)
        .filter(Job.status == JobStatus.PENDING.value, Job.run_at <= utcnow())
        .order_by(Job.run_at.asc())
        .limit(limit)
        .all()
    )


def get_job(db: Session, job_id: UUID, org_id: UUID | None = None) -> Job | None:
    query = db.query(Job).filter(Job.id == job_id)
    if org_id:
        query = query.filter(Job.organization_id == org_id)
    return query.first()


def list_jobs(
    db: Session,
    org_id: UUID,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    filters = [Job.organization_id == org_id]
    if status:
        filters.append(Job.status == status.value)
    if job_type:
        filters.append(Job.job_type == job_type.value)
    return db.query(Job).filter(*filters).order_by(Job.created_at.desc()).limit(limit).all()


# =============================================================================
# State transitions
# =============================================================================

def _save(db: Session, job: Job) -> Job:
    db.commit()
    db.refresh(job)
    return job


def mark_job_running(db: Session, job: Job) -> Job:
    """Claim the job; each claim counts as an attempt."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    return _save(db, job)


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    return _save(db, job)


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """Record the error; back to pending while attempts remain."""
    job.last_error = error
    out_of_attempts = job.attempts >= job.max_attempts
    job.status = (JobStatus.FAILED if out_of_attempts else JobStatus.PENDING).value
    return _save(db, job)


def retry_job(db: Session, job: Job) -> Job:
    """Give a failed job a fresh set of attempts, due immediately."""
    if job.status != JobStatus.FAILED.value:
        raise ValueError("Only failed jobs can be retried")
    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.run_at = utcnow()
    return _save(db, job)


def retire_pending_jobs(db: Session, idempotency_prefix: str, reason: str) -> int:
    """Complete queued jobs whose idempotency key starts with the prefix. Does not commit."""
    jobs = (
        db.query(Job)
        .filter(
            Job.idempotency_key.like(f"{idempotency_prefix}%"),
            Job.status == JobStatus.PENDING.value,
        )
        .all()
    )
    for job in jobs:
        job.status = JobStatus.COMPLETED.value
        job.completed_at = utcnow()
        job.last_error = reason
    return len(jobs)

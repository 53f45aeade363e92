"""
Job worker: `python -m astralis.worker` (or the `astralis-worker` script).

Polls the jobs table for due work and dispatches each job through
astralis.jobs.registry. Reminders, notification emails and intake
routing all run here.
"""

import asyncio
import logging
import os

from astralis.core.config import settings
from astralis.core.structured_logging import build_log_context
from astralis.db.session import SessionLocal
from astralis.jobs.registry import resolve_job_handler
from astralis.services import job_service

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = int(os.getenv("WORKER_POLL_INTERVAL", "10"))
BATCH_SIZE = int(os.getenv("WORKER_BATCH_SIZE", "10"))

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _job_context(job) -> dict:
    return build_log_context(org_id=str(job.organization_id), job_id=str(job.id))


async def _run_one(db, job) -> None:
    """Claim, execute and settle one job. Handler errors never escape."""
    job_service.mark_job_running(db, job)
    logger.info(
        "Running %s job %s (attempt %s/%s)",
        job.job_type,
        job.id,
        job.attempts,
        job.max_attempts,
        extra=_job_context(job),
    )
    try:
        handler = resolve_job_handler(job.job_type)
        await handler(db, job)
    except Exception as exc:
        db.rollback()
        job_service.mark_job_failed(db, job, str(exc))
        logger.error(
            "Job %s raised %s, now %s",
            job.id,
            type(exc).__name__,
            job.status,
            extra=_job_context(job),
        )
        return
    job_service.mark_job_completed(db, job)


async def run_pending_jobs(db, limit: int = BATCH_SIZE) -> int:
    """Work through one batch of due jobs; returns the batch size."""
    batch = job_service.get_pending_jobs(db, limit=limit)
    for job in batch:
        await _run_one(db, job)
    if batch:
        logger.info("Processed %s job(s)", len(batch))
    return len(batch)


async def worker_loop() -> None:
    logger.info("Worker up: every %ss, %s jobs per batch", POLL_INTERVAL_SECONDS, BATCH_SIZE)
    if not settings.RESEND_API_KEY:
        logger.warning("No RESEND_API_KEY; notification emails are logged only")

    while True:
        with SessionLocal() as db:
            try:
                await run_pending_jobs(db)
            except Exception:
                # A broken batch (e.g. DB outage) must not kill the poller
                logger.exception("Job batch failed")
        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception:
        logger.exception("Worker crashed", extra=build_log_context(route="worker", method="background"))
        raise


if __name__ == "__main__":
    main()

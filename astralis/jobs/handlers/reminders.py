"""Event reminder job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from astralis.services import reminder_service

logger = logging.getLogger(__name__)


async def process_event_reminder_job(db, job) -> None:
    """Send the reminder email for payload.reminder_id."""
    payload = job.payload or {}
    raw_id = payload.get("reminder_id")
    if not raw_id:
        raise ValueError("Missing reminder_id in job payload")

    result = await reminder_service.process_event_reminder(db, UUID(str(raw_id)))
    if result.get("skipped"):
        logger.info("Reminder job %s skipped: %s", job.id, result.get("reason"))

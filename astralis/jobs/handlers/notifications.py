"""Notification job handlers."""

from __future__ import annotations

import logging

from astralis.services import email_service

logger = logging.getLogger(__name__)


async def process_notification(db, job) -> None:
    """Send a notification email described by the job payload."""
    logger.info("Processing notification job %s", job.id)
    payload = job.payload or {}

    to_email = payload.get("to_email")
    subject = payload.get("subject")
    if not to_email or not subject:
        raise ValueError("Notification payload requires to_email and subject")

    await email_service.send_email(
        to_email=to_email,
        subject=subject,
        html=payload.get("html") or subject,
        text=payload.get("text"),
        idempotency_key=f"notification-{job.id}",
    )

"""Intake routing job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from astralis.db.enums import IntakeStatus
from astralis.services import intake_routing_service, intake_service

logger = logging.getLogger(__name__)


async def process_intake_routing(db, job) -> None:
    """(Re)route an intake request that is still waiting for a pipeline."""
    payload = job.payload or {}
    raw_id = payload.get("intake_id")
    if not raw_id:
        raise ValueError("Missing intake_id in job payload")

    intake = intake_service.get_intake(db, job.organization_id, UUID(str(raw_id)))
    if not intake:
        raise ValueError(f"Intake request {raw_id} not found")
    if intake.status != IntakeStatus.NEW.value:
        logger.info("Intake %s already %s, skipping routing", intake.id, intake.status)
        return

    result = await intake_routing_service.route_intake(db, job.organization_id, intake)
    logger.info(
        "Intake %s routed: assigned=%s confidence=%s",
        intake.id,
        result["assigned"],
        result["confidence"],
    )

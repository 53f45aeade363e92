"""Maintenance job handlers."""

from __future__ import annotations

from astralis.services import agent_log_service


async def process_log_cleanup(db, job) -> None:
    """Purge the organization's agent logs past the retention window."""
    payload = job.payload or {}
    days = int(payload.get("days") or agent_log_service.DEFAULT_RETENTION_DAYS)
    agent_log_service.cleanup_old_logs(db, org_id=job.organization_id, days=days)

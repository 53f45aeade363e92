from datetime import timedelta

import pytest

from astralis import worker
from astralis.db.enums import IntakeStatus, JobStatus, JobType, LogCategory, ReminderStatus, Role
from astralis.db.models import AgentLog, Job
from astralis.jobs.registry import JOB_HANDLERS, resolve_job_handler
from astralis.schemas.intake import IntakeCreate
from astralis.schemas.pipeline import PipelineCreate
from astralis.schemas.scheduling import EventCreate
from astralis.services import (
    agent_log_service,
    email_service,
    intake_service,
    job_service,
    pipeline_service,
    reminder_service,
    scheduling_service,
)
from astralis.utils.time_windows import utcnow
from astralis.worker import run_pending_jobs


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    async def fake_send_email(**kwargs):
        sent.append(kwargs)
        return {"success": True, "message_id": "msg_1", "dry_run": False}

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


def test_every_job_type_has_a_handler():
    assert set(JOB_HANDLERS) == {t.value for t in JobType}


def test_unknown_job_type():
    with pytest.raises(ValueError, match="Unknown job type: teleport"):
        resolve_job_handler("teleport")


def test_schedule_job_dedupes_on_idempotency_key(db, test_org):
    first = job_service.schedule_job(
        db, test_org.id, JobType.NOTIFICATION, {"to_email": "a@example.com"}, idempotency_key="k1"
    )
    second = job_service.schedule_job(
        db, test_org.id, JobType.NOTIFICATION, {"to_email": "b@example.com"}, idempotency_key="k1"
    )

    assert first.id == second.id
    assert db.query(Job).count() == 1


def test_pending_jobs_exclude_future_runs(db, test_org):
    job_service.schedule_job(db, test_org.id, JobType.LOG_CLEANUP, {}, run_at=utcnow() + timedelta(hours=1))
    due = job_service.schedule_job(db, test_org.id, JobType.LOG_CLEANUP, {})

    assert [j.id for j in job_service.get_pending_jobs(db)] == [due.id]


def test_retry_only_failed_jobs(db, test_org):
    job = job_service.schedule_job(db, test_org.id, JobType.LOG_CLEANUP, {})

    with pytest.raises(ValueError, match="Only failed jobs can be retried"):
        job_service.retry_job(db, job)

    job.status = JobStatus.FAILED.value
    job.attempts = 3
    db.commit()

    job = job_service.retry_job(db, job)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_worker_sends_notification(db, test_org, outbox):
    job = job_service.schedule_job(
        db,
        test_org.id,
        JobType.NOTIFICATION,
        {"to_email": "client@example.com", "subject": "Update", "html": "<p>Done</p>"},
    )

    assert await run_pending_jobs(db) == 1

    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    assert outbox[0]["to_email"] == "client@example.com"
    assert outbox[0]["idempotency_key"] == f"notification-{job.id}"


@pytest.mark.asyncio
async def test_bad_payload_is_retried_then_failed(db, test_org, outbox):
    job = job_service.schedule_job(db, test_org.id, JobType.NOTIFICATION, {"subject": "No one"})

    await run_pending_jobs(db)
    db.refresh(job)
    assert job.status == JobStatus.PENDING.value
    assert job.last_error == "Notification payload requires to_email and subject"

    await run_pending_jobs(db)
    await run_pending_jobs(db)
    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 3
    assert outbox == []


@pytest.mark.asyncio
async def test_worker_delivers_event_reminders(db, test_org, test_user, outbox):
    start = utcnow() + timedelta(minutes=30)
    event = scheduling_service.create_event(
        db,
        test_org.id,
        test_user.id,
        EventCreate(title="Demo", start_time=start, end_time=start + timedelta(minutes=30)),
    )
    assert event.reminders == []
    reminder = reminder_service.create_reminder(
        db, test_org.id, event, utcnow() - timedelta(seconds=1)
    )

    await run_pending_jobs(db)

    db.refresh(reminder)
    assert reminder.status == ReminderStatus.SENT.value
    assert outbox[0]["subject"].startswith("Reminder: Demo")


@pytest.mark.asyncio
async def test_worker_routes_intake(db, test_org):
    pipeline = pipeline_service.create_pipeline(
        db, test_org.id, None, PipelineCreate(name="Inbound")
    )
    intake = intake_service.create_intake(db, test_org.id, None, IntakeCreate(title="New lead"))
    job_service.schedule_job(db, test_org.id, JobType.INTAKE_ROUTING, {"intake_id": str(intake.id)})

    await run_pending_jobs(db)

    db.refresh(intake)
    assert intake.status == IntakeStatus.ASSIGNED.value
    assert intake.assigned_pipeline_id == pipeline.id


@pytest.mark.asyncio
async def test_worker_cleans_up_logs(db, test_org):
    entry = agent_log_service.info(db, LogCategory.SYSTEM, "old_entry", "stale", org_id=test_org.id)
    entry.created_at = utcnow() - timedelta(days=90)
    db.commit()
    job = job_service.schedule_job(db, test_org.id, JobType.LOG_CLEANUP, {"days": 30})

    await run_pending_jobs(db)

    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert db.query(AgentLog).count() == 0


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_jobs_api_retry(db, test_org, authed_client):
    job = job_service.schedule_job(db, test_org.id, JobType.LOG_CLEANUP, {})

    res = await authed_client.post(f"/jobs/{job.id}/retry")
    assert res.status_code == 400

    job.status = JobStatus.FAILED.value
    db.commit()
    res = await authed_client.post(f"/jobs/{job.id}/retry")
    assert res.status_code == 200
    assert res.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_jobs_api_is_developer_only(db, test_org, user_factory, client_for):
    member = user_factory(test_org, role=Role.MEMBER)

    async with client_for(member, test_org, Role.MEMBER) as c:
        res = await c.get("/jobs")
        assert res.status_code == 403


def test_worker_main_configures_logging(monkeypatch):
    configured = {}

    def fake_run(coro):
        coro.close()

    monkeypatch.setattr(worker.logging, "basicConfig", lambda **kw: configured.update(kw))
    monkeypatch.setattr(worker.asyncio, "run", fake_run)

    worker.main()

    assert configured["format"] == "%(asctime)s [%(levelname)s] %(message)s"
    assert configured["datefmt"] == "%Y-%m-%d %H:%M:%S"

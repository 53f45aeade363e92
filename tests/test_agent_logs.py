from datetime import timedelta

import pytest

from astralis.db.enums import LogCategory, LogLevel, Role
from astralis.db.models import AgentLog
from astralis.services import agent_log_service
from astralis.utils.time_windows import utcnow


def _seed(db, org, user):
    agent_log_service.info(
        db, LogCategory.INTAKE, "intake_received", "New intake", org_id=org.id, task_id="t-1"
    )
    agent_log_service.info(
        db,
        LogCategory.CLASSIFICATION,
        "intake_classified",
        "Classified as support",
        org_id=org.id,
        task_id="t-1",
        duration_ms=120,
        metadata={"confidence": 0.9},
    )
    agent_log_service.error(
        db,
        LogCategory.DELIVERY,
        "reminder_failed",
        "Send failed",
        org_id=org.id,
        user_id=user.id,
        duration_ms=80,
        error=RuntimeError("smtp down"),
    )
    db.commit()


def test_log_is_flushed_not_committed(db, test_org):
    entry = agent_log_service.warn(db, LogCategory.SYSTEM, "probe", "hello", org_id=test_org.id)

    assert entry.id is not None
    db.rollback()
    assert db.query(AgentLog).count() == 0


def test_error_payload_from_exception(db, test_org, test_user):
    _seed(db, test_org, test_user)

    entry = db.query(AgentLog).filter(AgentLog.level == LogLevel.ERROR.value).one()
    assert entry.error == {"type": "RuntimeError", "message": "smtp down"}


def test_query_logs_filters(db, test_org, other_org, test_user):
    _seed(db, test_org, test_user)
    _seed(db, other_org, test_user)

    logs, total = agent_log_service.query_logs(db, test_org.id)
    assert total == 3

    logs, total = agent_log_service.query_logs(db, test_org.id, level=LogLevel.ERROR)
    assert [log.action for log in logs] == ["reminder_failed"]

    logs, total = agent_log_service.query_logs(db, test_org.id, action="intake")
    assert total == 2

    logs, total = agent_log_service.query_logs(db, test_org.id, limit=1, offset=1)
    assert len(logs) == 1 and total == 3


def test_task_timeline_is_chronological(db, test_org, test_user):
    _seed(db, test_org, test_user)

    timeline = agent_log_service.get_task_timeline(db, test_org.id, "t-1")

    assert [log.action for log in timeline] == ["intake_received", "intake_classified"]


def test_log_stats(db, test_org, test_user):
    _seed(db, test_org, test_user)

    stats = agent_log_service.get_log_stats(db, test_org.id)

    assert stats["total"] == 3
    assert stats["by_level"]["info"] == 2
    assert stats["by_level"]["debug"] == 0
    assert stats["by_category"]["delivery"] == 1
    assert stats["error_rate"] == round(1 / 3, 4)
    assert stats["avg_duration_ms"] == 100.0


def test_log_stats_empty(db, test_org):
    stats = agent_log_service.get_log_stats(db, test_org.id)
    assert stats["total"] == 0
    assert stats["error_rate"] == 0.0
    assert stats["avg_duration_ms"] is None


def test_cleanup_old_logs(db, test_org, test_user):
    _seed(db, test_org, test_user)
    old = db.query(AgentLog).filter(AgentLog.action == "intake_received").one()
    old.created_at = utcnow() - timedelta(days=45)
    db.commit()

    deleted = agent_log_service.cleanup_old_logs(db, org_id=test_org.id, days=30)

    assert deleted == 1
    assert db.query(AgentLog).count() == 2


@pytest.mark.asyncio
async def test_logs_api_serializes_metadata(db, test_org, test_user, authed_client):
    _seed(db, test_org, test_user)

    res = await authed_client.get("/agent/logs", params={"category": "classification"})

    assert res.status_code == 200
    body = res.json()
    assert body["pagination"]["total"] == 1
    assert body["logs"][0]["metadata"] == {"confidence": 0.9}
    assert "log_metadata" not in body["logs"][0]


@pytest.mark.asyncio
async def test_logs_api_timeline_and_stats(db, test_org, test_user, authed_client):
    _seed(db, test_org, test_user)

    res = await authed_client.get("/agent/logs/tasks/t-1")
    assert [log["action"] for log in res.json()] == ["intake_received", "intake_classified"]

    res = await authed_client.get("/agent/logs/stats", params={"period_hours": 1})
    assert res.json()["total"] == 3


@pytest.mark.asyncio
async def test_log_cleanup_requires_reviewer(db, test_org, user_factory, client_for):
    member = user_factory(test_org, role=Role.MEMBER)

    async with client_for(member, test_org, Role.MEMBER) as c:
        res = await c.delete("/agent/logs")
        assert res.status_code == 403

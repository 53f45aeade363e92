"""Tests for the events API: CRUD, default reminders and conflict checks."""

import pytest

from astralis.db.enums import JobType
from astralis.db.models import Job

EVENT = {
    "title": "Quarterly review",
    "start_time": "2030-01-07T10:00:00Z",
    "end_time": "2030-01-07T11:00:00Z",
    "location": "Room 4",
}


async def _create(client, **overrides):
    res = await client.post("/events", json={**EVENT, **overrides})
    assert res.status_code == 201, res.text
    return res.json()


@pytest.mark.asyncio
async def test_create_event_adds_default_reminders(authed_client, db):
    event = await _create(authed_client)

    assert event["status"] == "SCHEDULED"
    assert sorted(r["reminder_time"][:16] for r in event["reminders"]) == [
        "2030-01-06T10:00",
        "2030-01-07T09:00",
    ]
    jobs = db.query(Job).filter(Job.job_type == JobType.EVENT_REMINDER.value).all()
    assert len(jobs) == 2


@pytest.mark.asyncio
async def test_create_event_rejects_inverted_times(authed_client):
    res = await authed_client.post(
        "/events",
        json={**EVENT, "end_time": "2030-01-07T09:00:00Z"},
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "End time must be after start time"


@pytest.mark.asyncio
async def test_mutations_require_csrf_header(authed_client):
    res = await authed_client.post("/events", json=EVENT, headers={"X-Requested-With": ""})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_requires_authentication(client):
    res = await client.get("/events")
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_list_and_search_events(authed_client):
    await _create(authed_client)
    await _create(
        authed_client,
        title="Lunch",
        start_time="2030-01-07T12:00:00Z",
        end_time="2030-01-07T13:00:00Z",
    )

    res = await authed_client.get("/events")
    assert [e["title"] for e in res.json()] == ["Quarterly review", "Lunch"]

    res = await authed_client.get("/events", params={"search": "lun"})
    assert [e["title"] for e in res.json()] == ["Lunch"]


@pytest.mark.asyncio
async def test_update_moves_reminders(authed_client, db):
    event = await _create(authed_client)

    res = await authed_client.patch(
        f"/events/{event['id']}",
        json={"start_time": "2030-01-08T10:00:00Z", "end_time": "2030-01-08T11:00:00Z"},
    )

    assert res.status_code == 200
    times = sorted(r["reminder_time"][:16] for r in res.json()["reminders"])
    assert times == ["2030-01-07T10:00", "2030-01-08T09:00"]
    assert db.query(Job).count() == 4


@pytest.mark.asyncio
async def test_update_validates_merged_times(authed_client):
    event = await _create(authed_client)

    res = await authed_client.patch(
        f"/events/{event['id']}", json={"end_time": "2030-01-07T09:30:00Z"}
    )
    assert res.status_code == 400


@pytest.mark.asyncio
async def test_cancel_and_delete(authed_client):
    event = await _create(authed_client)

    res = await authed_client.post(f"/events/{event['id']}/cancel")
    assert res.json()["status"] == "CANCELLED"

    res = await authed_client.delete(f"/events/{event['id']}")
    assert res.status_code == 204

    res = await authed_client.get(f"/events/{event['id']}")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_events_are_private_to_their_owner(db, test_org, authed_client, user_factory, client_for):
    event = await _create(authed_client)
    colleague = user_factory(test_org)

    async with client_for(colleague, test_org) as other:
        res = await other.get(f"/events/{event['id']}")
        assert res.status_code == 404
        res = await other.post(f"/events/{event['id']}/cancel")
        assert res.status_code == 404


@pytest.mark.asyncio
async def test_check_conflicts_returns_alternatives(authed_client):
    await authed_client.post(
        "/availability-rules",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
    )
    await _create(authed_client)

    res = await authed_client.post(
        "/events/check-conflicts",
        json={"start_time": "2030-01-07T10:30:00Z", "end_time": "2030-01-07T11:30:00Z"},
    )

    body = res.json()
    assert body["has_conflict"] is True
    assert body["severity"] == "medium"
    assert body["conflicts"][0]["conflict_score"] == 50
    assert [a["start_time"][11:16] for a in body["alternatives"]] == ["09:00", "11:00"]


@pytest.mark.asyncio
async def test_check_conflicts_can_exclude_the_event_being_edited(authed_client):
    event = await _create(authed_client)

    res = await authed_client.post(
        "/events/check-conflicts",
        params={"exclude_event_id": event["id"]},
        json={"start_time": EVENT["start_time"], "end_time": EVENT["end_time"]},
    )

    assert res.json()["has_conflict"] is False
    assert res.json()["alternatives"] == []


@pytest.mark.asyncio
async def test_check_conflicts_rejects_empty_window(authed_client):
    res = await authed_client.post(
        "/events/check-conflicts",
        json={"start_time": EVENT["start_time"], "end_time": EVENT["start_time"]},
    )
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_quick_check(authed_client):
    await _create(authed_client)

    res = await authed_client.post(
        "/availability-rules/quick-check",
        json={"start_time": "2030-01-07T10:59:00Z", "end_time": "2030-01-07T12:00:00Z"},
    )
    assert res.json() == {"has_conflict": True}

    res = await authed_client.post(
        "/availability-rules/quick-check",
        json={"start_time": "2030-01-07T11:00:00Z", "end_time": "2030-01-07T12:00:00Z"},
    )
    assert res.json() == {"has_conflict": False}

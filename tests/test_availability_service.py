from datetime import date, datetime, timedelta, timezone
import uuid

import pytest

from astralis.db.enums import Role
from astralis.schemas.scheduling import AvailabilityRuleCreate, AvailabilityRuleUpdate, EventCreate
from astralis.services import availability_service, scheduling_service

MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)


def _at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _rule(db, org, user, start="09:00", end="17:00", day=1, **kwargs):
    return availability_service.create_rule(
        db,
        org.id,
        user.id,
        AvailabilityRuleCreate(day_of_week=day, start_time=start, end_time=end, **kwargs),
    )


def _event(db, org, user, start, end):
    return scheduling_service.create_event(
        db, org.id, user.id, EventCreate(title="Busy", start_time=start, end_time=end)
    )


# =============================================================================
# Rule validation and ownership
# =============================================================================

def test_rule_rejects_bad_time_format():
    with pytest.raises(ValueError):
        AvailabilityRuleCreate(day_of_week=1, start_time="9am", end_time="17:00")


def test_rule_rejects_start_after_end():
    with pytest.raises(ValueError):
        AvailabilityRuleCreate(day_of_week=1, start_time="17:00", end_time="09:00")


def test_update_rule_checks_merged_times(db, test_org, test_user):
    rule = _rule(db, test_org, test_user)
    with pytest.raises(ValueError, match="Start time must be before end time"):
        availability_service.update_rule(
            db, rule.id, test_user.id, AvailabilityRuleUpdate(start_time="18:00")
        )

    updated = availability_service.update_rule(
        db, rule.id, test_user.id, AvailabilityRuleUpdate(end_time="18:00")
    )
    assert updated.end_time == "18:00"


def test_rule_ownership_is_enforced(db, test_org, test_user, user_factory):
    rule = _rule(db, test_org, test_user)
    someone_else = user_factory(test_org)

    with pytest.raises(availability_service.RuleOwnershipError):
        availability_service.delete_rule(db, rule.id, someone_else.id)
    with pytest.raises(availability_service.RuleNotFoundError):
        availability_service.get_owned_rule(db, uuid.uuid4(), test_user.id)

    availability_service.delete_rule(db, rule.id, test_user.id)
    assert availability_service.list_rules(db, test_user.id) == []


def test_rule_timezone_is_applied(db, test_org, test_user):
    _rule(db, test_org, test_user, start="09:00", end="17:00", timezone="America/New_York")

    [window] = availability_service.get_user_availability(db, test_user.id, MONDAY)

    assert window.start == _at(14)
    assert window.end == _at(22)


def test_quick_conflict(db, test_org, test_user):
    _event(db, test_org, test_user, _at(10), _at(11))

    assert availability_service.check_quick_conflict(db, test_user.id, _at(10, 30), _at(12))
    assert not availability_service.check_quick_conflict(db, test_user.id, _at(11), _at(12))


def test_windows_use_the_rule_zone_weekday(db, test_org, test_user):
    # Tuesday 09:00-17:00 Sydney (UTC+11 in January) is Monday 22:00Z to Tuesday 06:00Z
    _rule(db, test_org, test_user, day=2, timezone="Australia/Sydney")

    [window] = availability_service.get_windows_at(db, test_user.id, _at(23))

    assert (window.start, window.end) == (_at(22), _at(6, day=TUESDAY))
    assert availability_service.get_windows_at(db, test_user.id, _at(10)) == []


# =============================================================================
# Free blocks
# =============================================================================

def test_availability_blocks_subtract_events(db, test_org, test_user):
    _rule(db, test_org, test_user, start="09:00", end="12:00")
    _event(db, test_org, test_user, _at(10), _at(11))

    result = availability_service.get_availability_blocks(db, test_org.id, test_user.id, MONDAY, MONDAY)

    [day] = result["availability"]
    assert day["day_of_week"] == "Monday"
    assert day["scheduled_events"] == 1
    assert [(b["start"], b["end"]) for b in day["available_blocks"]] == [
        (_at(9), _at(10)),
        (_at(11), _at(12)),
    ]
    assert day["total_available_minutes"] == 120
    assert result["summary"]["total_available_hours"] == 2.0


def test_availability_blocks_drop_short_gaps(db, test_org, test_user):
    _rule(db, test_org, test_user, start="09:00", end="10:00")
    _event(db, test_org, test_user, _at(9, 10), _at(10))

    result = availability_service.get_availability_blocks(db, test_org.id, test_user.id, MONDAY, MONDAY)

    assert result["availability"][0]["available_blocks"] == []


def test_availability_blocks_over_a_week(db, test_org, test_user):
    for day in range(1, 6):
        _rule(db, test_org, test_user, start="09:00", end="17:00", day=day)

    result = availability_service.get_availability_blocks(
        db, test_org.id, test_user.id, MONDAY, MONDAY + timedelta(days=6)
    )

    summary = result["summary"]
    assert summary["total_days"] == 7
    assert summary["total_available_minutes"] == 5 * 8 * 60
    assert summary["average_available_minutes_per_day"] == round(5 * 8 * 60 / 7)


def test_availability_blocks_range_errors(db, test_org, test_user):
    with pytest.raises(ValueError, match="End date"):
        availability_service.get_availability_blocks(
            db, test_org.id, test_user.id, MONDAY, MONDAY - timedelta(days=1)
        )
    with pytest.raises(ValueError, match="30 days"):
        availability_service.get_availability_blocks(
            db, test_org.id, test_user.id, MONDAY, MONDAY + timedelta(days=31)
        )


def test_days_without_rules_report_no_events(db, test_org, test_user):
    _event(db, test_org, test_user, _at(10), _at(11))

    result = availability_service.get_availability_blocks(db, test_org.id, test_user.id, MONDAY, MONDAY)

    [day] = result["availability"]
    assert day["available_blocks"] == []
    assert day["scheduled_events"] == 0
    assert result["summary"]["total_scheduled_events"] == 0


def test_availability_blocks_follow_user_local_day(db, test_org, user_factory):
    sydney_user = user_factory(test_org, timezone="Australia/Sydney")
    _rule(db, test_org, sydney_user, day=2, timezone="Australia/Sydney")
    # Tuesday 10:00-11:00 in Sydney
    _event(db, test_org, sydney_user, _at(23), _at(0, day=TUESDAY))

    result = availability_service.get_availability_blocks(
        db, test_org.id, sydney_user.id, TUESDAY, TUESDAY
    )

    [day] = result["availability"]
    assert day["day_of_week"] == "Tuesday"
    assert day["scheduled_events"] == 1
    assert [(b["start"], b["end"]) for b in day["available_blocks"]] == [
        (_at(22), _at(23)),
        (_at(0, day=TUESDAY), _at(6, day=TUESDAY)),
    ]


def test_availability_blocks_need_org_member(db, test_org, other_org, user_factory):
    outsider = user_factory(other_org)

    with pytest.raises(ValueError, match="User not found"):
        availability_service.get_availability_blocks(db, test_org.id, outsider.id, MONDAY, MONDAY)


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_rules_api_roundtrip(authed_client):
    res = await authed_client.post(
        "/availability-rules",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "17:00"},
    )
    assert res.status_code == 201
    rule_id = res.json()["id"]

    res = await authed_client.patch(f"/availability-rules/{rule_id}", json={"end_time": "08:00"})
    assert res.status_code == 400

    res = await authed_client.get("/availability-rules")
    assert [r["id"] for r in res.json()] == [rule_id]

    res = await authed_client.delete(f"/availability-rules/{rule_id}")
    assert res.status_code == 204


@pytest.mark.asyncio
async def test_rules_api_rejects_foreign_rule(db, test_org, authed_client, user_factory):
    owner = user_factory(test_org)
    rule = _rule(db, test_org, owner)

    res = await authed_client.delete(f"/availability-rules/{rule.id}")
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_availability_api_for_colleague(db, test_org, other_org, authed_client, user_factory):
    colleague = user_factory(test_org, role=Role.MEMBER)
    _rule(db, test_org, colleague)
    outsider = user_factory(other_org)

    res = await authed_client.get(
        "/agent/availability",
        params={"start_date": "2030-01-07", "end_date": "2030-01-07", "user_id": str(colleague.id)},
    )
    assert res.status_code == 200
    assert res.json()["summary"]["total_available_minutes"] == 480

    res = await authed_client.get(
        "/agent/availability",
        params={"start_date": "2030-01-07", "end_date": "2030-01-07", "user_id": str(outsider.id)},
    )
    assert res.status_code == 403

    res = await authed_client.get(
        "/agent/availability",
        params={"start_date": "2030-01-07", "end_date": "2030-01-06"},
    )
    assert res.status_code == 400

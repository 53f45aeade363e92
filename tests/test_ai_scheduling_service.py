from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from astralis.db.enums import PreferredTime
from astralis.schemas.scheduling import AvailabilityRuleCreate, EventCreate
from astralis.services import ai_scheduling_service, availability_service, scheduling_service
from astralis.services.ai_scheduling_service import TimeSlot

MONDAY = date(2030, 1, 7)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute, tzinfo=timezone.utc)


def _event(db, org, user, start, end):
    return scheduling_service.create_event(
        db, org.id, user.id, EventCreate(title="Busy", start_time=start, end_time=end)
    )


# =============================================================================
# Candidate generation
# =============================================================================

def test_generate_default_day():
    slots = ai_scheduling_service.generate_time_slots(MONDAY, 60)

    assert len(slots) == 15
    assert slots[0].start == _at(9)
    assert slots[-1].end == _at(17)


def test_generate_morning_half_hours():
    slots = ai_scheduling_service.generate_time_slots(MONDAY, 30, PreferredTime.MORNING)

    assert len(slots) == 8
    assert [s.start for s in slots[:2]] == [_at(8), _at(8, 30)]
    assert slots[-1].end == _at(12)


def test_generate_in_user_timezone():
    slots = ai_scheduling_service.generate_time_slots(
        MONDAY, 60, PreferredTime.EVENING, tz_name="Europe/Berlin"
    )
    # 17:00 CET is 16:00 UTC in January
    assert slots[0].start == _at(16)


def test_duration_longer_than_range_yields_nothing():
    assert ai_scheduling_service.generate_time_slots(MONDAY, 300, PreferredTime.MORNING) == []


# =============================================================================
# Filtering
# =============================================================================

def test_no_rules_means_open_all_day(db, test_user):
    slots = ai_scheduling_service.generate_time_slots(MONDAY, 60)
    assert ai_scheduling_service.filter_by_availability(db, test_user.id, slots) == slots


def test_filter_by_availability_keeps_slots_inside_rules(db, test_org, test_user):
    availability_service.create_rule(
        db,
        test_org.id,
        test_user.id,
        AvailabilityRuleCreate(day_of_week=1, start_time="13:00", end_time="15:00"),
    )
    slots = ai_scheduling_service.generate_time_slots(MONDAY, 60)

    kept = ai_scheduling_service.filter_by_availability(db, test_user.id, slots)

    assert [s.start for s in kept] == [_at(13), _at(13, 30), _at(14)]


def test_filter_by_availability_uses_rule_timezone(db, test_org, test_user):
    for weekday in range(1, 6):
        availability_service.create_rule(
            db,
            test_org.id,
            test_user.id,
            AvailabilityRuleCreate(
                day_of_week=weekday,
                start_time="09:00",
                end_time="17:00",
                timezone="Australia/Sydney",
            ),
        )
    # Tuesday in Sydney starts while it is still Monday in UTC
    slots = ai_scheduling_service.generate_time_slots(
        date(2030, 1, 8), 60, tz_name="Australia/Sydney"
    )

    kept = ai_scheduling_service.filter_by_availability(db, test_user.id, slots)

    assert len(slots) == 15
    assert kept == slots


def test_filter_by_conflicts_applies_buffer(db, test_org, test_user):
    _event(db, test_org, test_user, _at(10), _at(11))
    slots = [TimeSlot(_at(9), _at(10)), TimeSlot(_at(11), _at(12)), TimeSlot(_at(12), _at(13))]

    assert ai_scheduling_service.filter_by_conflicts(db, [test_user.id], slots) == slots

    buffered = ai_scheduling_service.filter_by_conflicts(
        db, [test_user.id], slots, buffer_minutes=15
    )
    assert buffered == [slots[2]]


# =============================================================================
# Ranking
# =============================================================================

def test_business_hour_scores_keep_slot_order():
    slots = [TimeSlot(_at(h), _at(h + 1)) for h in (8, 9, 13, 16)]

    ranked = ai_scheduling_service.rank_by_business_hours(slots)

    assert [r["start_time"] for r in ranked] == [_at(8), _at(9), _at(13), _at(16)]
    assert [r["score"] for r in ranked] == [75, 90 - 2, 85 - 4, 70 - 6]
    assert all(r["confidence"] == "medium" for r in ranked)


def test_business_hour_fallback_takes_first_five_in_order():
    slots = [
        TimeSlot(_at(8) + timedelta(minutes=30 * i), _at(9) + timedelta(minutes=30 * i))
        for i in range(10)
    ]

    ranked = ai_scheduling_service.rank_by_business_hours(slots)

    assert [r["start_time"] for r in ranked] == [s.start for s in slots[:5]]
    assert [r["score"] for r in ranked] == [75, 73, 86, 84, 82]


@pytest.mark.asyncio
async def test_rank_without_provider_uses_business_hours():
    slots = [TimeSlot(_at(16), _at(17)), TimeSlot(_at(9), _at(10))]

    ranked = await ai_scheduling_service.rank_slots_with_ai(slots, "Sync", 1)

    assert [r["start_time"] for r in ranked] == [_at(16), _at(9)]
    assert [r["score"] for r in ranked] == [70, 88]
    assert ranked[0]["reasoning"] == ai_scheduling_service.HOUR_FALLBACK_REASONING


@pytest.mark.asyncio
async def test_rank_with_model_output(fake_ai):
    fake_ai.reply(
        "```json\n"
        '[{"slotIndex": 2, "score": 95, "reasoning": "Fresh start", "confidenceLevel": "HIGH"},'
        ' {"slotIndex": 1, "score": 60, "reasoning": "Late", "confidenceLevel": "low"},'
        ' {"slotIndex": 9, "score": 99}]\n'
        "```"
    )
    slots = [TimeSlot(_at(16), _at(17)), TimeSlot(_at(9), _at(10))]

    ranked = await ai_scheduling_service.rank_slots_with_ai(slots, "Planning", 2)

    assert [(r["start_time"], r["score"], r["confidence"]) for r in ranked] == [
        (_at(9), 95, "high"),
        (_at(16), 60, "low"),
    ]
    prompt = fake_ai.calls[0]["messages"][1].content
    assert "Rank these available meeting slots for: Planning" in prompt


@pytest.mark.asyncio
async def test_model_order_is_kept(fake_ai):
    fake_ai.reply(
        '[{"slotIndex": 1, "score": 60.5, "reasoning": "Late", "confidenceLevel": "low"},'
        ' {"slotIndex": 2, "score": 95, "reasoning": "Fresh start", "confidenceLevel": "high"}]'
    )
    slots = [TimeSlot(_at(16), _at(17)), TimeSlot(_at(9), _at(10))]

    ranked = await ai_scheduling_service.rank_slots_with_ai(slots, "Planning", 2)

    assert [(r["start_time"], r["score"]) for r in ranked] == [(_at(16), 61), (_at(9), 95)]


@pytest.mark.asyncio
async def test_unparsable_model_output_falls_back(fake_ai):
    fake_ai.reply("I think the first one is best.")
    slots = [TimeSlot(_at(h), _at(h + 1)) for h in (9, 10, 11)]

    ranked = await ai_scheduling_service.rank_slots_with_ai(slots, "Sync", 1)

    assert [r["score"] for r in ranked] == [80, 70, 60]
    assert ranked[0]["reasoning"] == ai_scheduling_service.PARSE_FALLBACK_REASONING


@pytest.mark.asyncio
async def test_provider_error_falls_back_to_business_hours(fake_ai):
    fake_ai.fail(httpx.ConnectError("down"))
    slots = [TimeSlot(_at(9), _at(10))]

    ranked = await ai_scheduling_service.rank_slots_with_ai(slots, "Sync", 1)

    assert ranked[0]["score"] == 90


# =============================================================================
# End to end
# =============================================================================

@pytest.mark.asyncio
async def test_suggest_time_slots_excludes_participant_events(
    db, test_org, test_user, user_factory
):
    colleague = user_factory(test_org, email="pat@test.com")
    _event(db, test_org, colleague, _at(9), _at(12))

    result = await ai_scheduling_service.suggest_time_slots(
        db,
        test_org.id,
        test_user.id,
        MONDAY,
        60,
        preferred_time=PreferredTime.MORNING,
        participant_emails=["pat@test.com"],
    )

    # Only 08:00-09:00 survives the colleague's morning block
    assert [s["start_time"] for s in result["slots"]] == [_at(8)]
    assert result["total_candidates"] == 7


@pytest.mark.asyncio
async def test_suggest_time_slots_nothing_available(db, test_org, test_user):
    _event(db, test_org, test_user, _at(8), _at(12))

    result = await ai_scheduling_service.suggest_time_slots(
        db, test_org.id, test_user.id, MONDAY, 60, preferred_time=PreferredTime.MORNING
    )

    assert result["slots"] == []
    assert result["analysis_context"].startswith("No available time slots")


@pytest.mark.asyncio
async def test_suggest_returns_at_most_five(db, test_org, test_user):
    result = await ai_scheduling_service.suggest_time_slots(
        db, test_org.id, test_user.id, MONDAY, 30
    )
    assert len(result["slots"]) == 5
    assert result["total_candidates"] == 16


@pytest.mark.asyncio
async def test_suggest_api_includes_overbooking_warning(db, test_org, test_user, authed_client):
    _event(db, test_org, test_user, _at(9), _at(16))

    res = await authed_client.post(
        "/agent/suggest",
        json={"duration": 30, "preferred_date": "2030-01-07"},
    )

    assert res.status_code == 200
    body = res.json()
    assert body["overbooking_warning"]["is_overbooked"] is True
    assert body["metadata"]["preferred_time"] == "any"
    assert all(s["start_time"] >= "2030-01-07T16:00" for s in body["slots"])


@pytest.mark.asyncio
async def test_suggest_api_for_unknown_user_is_404(authed_client):
    res = await authed_client.post(
        "/agent/suggest",
        json={"user_id": str(uuid4()), "duration": 30, "preferred_date": "2030-01-07"},
    )
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_suggest_api_for_other_org_user_is_403(other_org, user_factory, authed_client):
    outsider = user_factory(other_org, email="outsider@other.com")

    res = await authed_client.post(
        "/agent/suggest",
        json={"user_id": str(outsider.id), "duration": 30, "preferred_date": "2030-01-07"},
    )
    assert res.status_code == 403

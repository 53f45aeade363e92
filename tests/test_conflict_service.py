from datetime import date, datetime, timezone

from astralis.db.enums import ConflictSeverity, ConflictType, EventStatus
from astralis.schemas.scheduling import AvailabilityRuleCreate, EventCreate
from astralis.services import availability_service, conflict_service, scheduling_service

# 2030-01-07 is a Monday (day_of_week == 1)
MONDAY = date(2030, 1, 7)


def _at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _event(db, org, user, start, end, title="Busy"):
    return scheduling_service.create_event(
        db, org.id, user.id, EventCreate(title=title, start_time=start, end_time=end)
    )


# =============================================================================
# Scoring
# =============================================================================

def test_score_containment_is_100():
    assert conflict_service.score_conflict(_at(10), _at(11), _at(9), _at(12)) == 100
    assert conflict_service.score_conflict(_at(9), _at(12), _at(10), _at(11)) == 100


def test_score_back_to_back_and_disjoint():
    assert conflict_service.score_conflict(_at(10), _at(11), _at(11), _at(12)) == 10
    assert conflict_service.score_conflict(_at(10), _at(11), _at(9), _at(10)) == 10
    assert conflict_service.score_conflict(_at(10), _at(11), _at(13), _at(14)) == 0


def test_score_partial_overlap_bands():
    # 50% of the shorter interval
    assert conflict_service.score_conflict(_at(10), _at(11), _at(10, 30), _at(11, 30)) == 50
    # 25%
    assert conflict_service.score_conflict(_at(10), _at(11), _at(10, 45), _at(12)) == 25
    # 50 of 60 minutes (83.3%) lands in the high band
    score = conflict_service.score_conflict(_at(10), _at(11), _at(10, 10), _at(11, 10))
    assert score == 87
    assert score < 100


def test_classify_conflict():
    assert (
        conflict_service.classify_conflict(_at(10), _at(11), _at(9), _at(12))
        == ConflictType.FULL_OVERLAP.value
    )
    assert (
        conflict_service.classify_conflict(_at(10), _at(11), _at(11), _at(12))
        == ConflictType.BACK_TO_BACK.value
    )
    assert (
        conflict_service.classify_conflict(_at(10), _at(11), _at(10, 30), _at(11, 30))
        == ConflictType.PARTIAL_OVERLAP.value
    )


# =============================================================================
# Detection
# =============================================================================

def test_detect_conflicts_without_events(db, test_org, test_user):
    result = conflict_service.detect_conflicts(db, test_org.id, test_user.id, _at(10), _at(11))
    assert result.has_conflict is False
    assert result.conflicts == []
    assert result.severity == ConflictSeverity.NONE.value


def test_detect_conflicts_partial_overlap_is_medium(db, test_org, test_user):
    event = _event(db, test_org, test_user, _at(10), _at(11))

    result = conflict_service.detect_conflicts(
        db, test_org.id, test_user.id, _at(10, 30), _at(11, 30)
    )

    assert result.has_conflict is True
    assert [c.event_id for c in result.conflicts] == [event.id]
    assert result.conflicts[0].conflict_score == 50
    assert result.severity == ConflictSeverity.MEDIUM.value


def test_small_overlap_is_low(db, test_org, test_user):
    _event(db, test_org, test_user, _at(10), _at(11))

    result = conflict_service.detect_conflicts(
        db, test_org.id, test_user.id, _at(10, 50), _at(11, 50)
    )

    assert result.conflicts[0].conflict_score == 17
    assert result.availability_issues == []
    assert result.severity == ConflictSeverity.LOW.value


def test_detect_conflicts_full_overlap_is_high(db, test_org, test_user):
    _event(db, test_org, test_user, _at(9), _at(12))

    result = conflict_service.detect_conflicts(db, test_org.id, test_user.id, _at(10), _at(11))

    assert result.severity == ConflictSeverity.HIGH.value
    assert result.conflicts[0].conflict_type == ConflictType.FULL_OVERLAP.value


def test_touching_events_do_not_conflict(db, test_org, test_user):
    _event(db, test_org, test_user, _at(9), _at(10))

    result = conflict_service.detect_conflicts(db, test_org.id, test_user.id, _at(10), _at(11))

    assert result.has_conflict is False


def test_cancelled_events_do_not_block(db, test_org, test_user):
    event = _event(db, test_org, test_user, _at(10), _at(11))
    scheduling_service.cancel_event(db, test_org.id, test_user.id, event.id)
    assert event.status == EventStatus.CANCELLED.value

    assert conflict_service.check_availability(db, test_org.id, test_user.id, _at(10), _at(11))


def test_exclude_event_id_skips_the_event_being_moved(db, test_org, test_user):
    event = _event(db, test_org, test_user, _at(10), _at(11))
    events = conflict_service.get_conflicting_events(
        db, test_user.id, _at(10), _at(11), exclude_event_id=event.id
    )
    assert events == []


def test_outside_available_hours_is_an_issue(db, test_org, test_user):
    availability_service.create_rule(
        db,
        test_org.id,
        test_user.id,
        AvailabilityRuleCreate(day_of_week=1, start_time="09:00", end_time="17:00"),
    )

    result = conflict_service.detect_conflicts(db, test_org.id, test_user.id, _at(18), _at(19))

    assert result.has_conflict is True
    assert result.conflicts == []
    assert result.availability_issues == ["Time is outside of available hours"]
    assert result.severity == ConflictSeverity.HIGH.value


def test_rule_weekday_is_read_in_rule_timezone(db, test_org, test_user):
    availability_service.create_rule(
        db,
        test_org.id,
        test_user.id,
        AvailabilityRuleCreate(
            day_of_week=2, start_time="09:00", end_time="17:00", timezone="Australia/Sydney"
        ),
    )
    tuesday = date(2030, 1, 8)

    # 10:00-11:00 Tuesday in Sydney
    result = conflict_service.detect_conflicts(
        db, test_org.id, test_user.id, _at(23), _at(0, day=tuesday)
    )
    assert result.availability_issues == []
    assert result.has_conflict is False

    # 10:00 Tuesday UTC is 21:00 Tuesday in Sydney
    late = conflict_service.detect_conflicts(
        db, test_org.id, test_user.id, _at(10, day=tuesday), _at(11, day=tuesday)
    )
    assert late.availability_issues == ["Time is outside of available hours"]


def test_inactive_rule_marks_unavailable_period(db, test_org, test_user):
    availability_service.create_rule(
        db,
        test_org.id,
        test_user.id,
        AvailabilityRuleCreate(
            day_of_week=1, start_time="12:00", end_time="13:00", is_active=False
        ),
    )

    result = conflict_service.detect_conflicts(
        db, test_org.id, test_user.id, _at(12, 30), _at(13, 30)
    )

    assert "Time conflicts with unavailable period 12:00-13:00" in result.availability_issues


def test_participant_events_are_reported(db, test_org, test_user, user_factory):
    colleague = user_factory(test_org, email="colleague@test.com", display_name="Colleague")
    _event(db, test_org, colleague, _at(10), _at(11), title="Standup")

    result = conflict_service.detect_conflicts(
        db,
        test_org.id,
        test_user.id,
        _at(10),
        _at(11),
        participant_emails=["Colleague@test.com"],
    )

    assert result.has_conflict is True
    assert result.conflicts[0].event_title == "Colleague: Standup"


# =============================================================================
# Alternatives
# =============================================================================

def test_find_alternative_slots_skips_busy_time(db, test_org, test_user):
    availability_service.create_rule(
        db,
        test_org.id,
        test_user.id,
        AvailabilityRuleCreate(day_of_week=1, start_time="09:00", end_time="12:00"),
    )
    _event(db, test_org, test_user, _at(10), _at(11))

    slots = conflict_service.find_alternative_slots(db, test_user.id, 60, MONDAY)

    assert [s["start_time"] for s in slots] == [_at(9), _at(11)]
    assert all((s["end_time"] - s["start_time"]).seconds == 3600 for s in slots)


def test_find_alternative_slots_without_rules_is_empty(db, test_org, test_user):
    assert conflict_service.find_alternative_slots(db, test_user.id, 30, MONDAY) == []

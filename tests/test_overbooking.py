from datetime import date, datetime, timezone

from astralis.schemas.scheduling import EventCreate
from astralis.services import overbooking_service, scheduling_service

MONDAY = date(2030, 1, 7)


def _book(db, org, user, start_hour, end_hour):
    scheduling_service.create_event(
        db,
        org.id,
        user.id,
        EventCreate(
            title="Booked",
            start_time=datetime(2030, 1, 7, start_hour, 0, tzinfo=timezone.utc),
            end_time=datetime(2030, 1, 7, end_hour, 0, tzinfo=timezone.utc),
        ),
    )


def test_empty_day(db, test_user):
    result = overbooking_service.analyze_overbooking(db, test_user.id, MONDAY)

    assert result == {
        "is_overbooked": False,
        "event_count": 0,
        "total_hours": 0,
        "percentage_booked": 0,
        "message": "This date has good availability (0 events, 0.0 hours scheduled).",
    }


def test_moderately_booked(db, test_org, test_user):
    _book(db, test_org, test_user, 9, 13)

    result = overbooking_service.analyze_overbooking(db, test_user.id, MONDAY)

    assert result["is_overbooked"] is False
    assert result["percentage_booked"] == 50
    assert result["message"].startswith("Note: This date is moderately booked")


def test_hours_threshold(db, test_org, test_user):
    _book(db, test_org, test_user, 9, 15)

    result = overbooking_service.analyze_overbooking(db, test_user.id, MONDAY)

    assert result["is_overbooked"] is True
    assert result["total_hours"] == 6.0
    assert result["percentage_booked"] == 75
    assert result["message"].startswith("Warning:")


def test_many_short_events_count_as_overbooked(db, test_org, test_user):
    for hour in range(9, 15):
        scheduling_service.create_event(
            db,
            test_org.id,
            test_user.id,
            EventCreate(
                title="Check-in",
                start_time=datetime(2030, 1, 7, hour, 0, tzinfo=timezone.utc),
                end_time=datetime(2030, 1, 7, hour, 15, tzinfo=timezone.utc),
            ),
        )

    result = overbooking_service.analyze_overbooking(db, test_user.id, MONDAY)

    assert result["event_count"] == 6
    assert result["total_hours"] == 1.5
    assert result["is_overbooked"] is True


def test_percentage_rounds_half_up(db, test_org, test_user):
    # 1h of an 8h day is 12.5%
    _book(db, test_org, test_user, 9, 10)

    result = overbooking_service.analyze_overbooking(db, test_user.id, MONDAY)

    assert result["percentage_booked"] == 13


def test_day_is_taken_in_user_timezone(db, test_org, user_factory):
    sydney_user = user_factory(test_org, timezone="Australia/Sydney")
    # Monday 23:00-24:00 UTC is Tuesday 10:00-11:00 in Sydney
    scheduling_service.create_event(
        db,
        test_org.id,
        sydney_user.id,
        EventCreate(
            title="Booked",
            start_time=datetime(2030, 1, 7, 23, 0, tzinfo=timezone.utc),
            end_time=datetime(2030, 1, 8, 0, 0, tzinfo=timezone.utc),
        ),
    )

    tuesday = overbooking_service.analyze_overbooking(db, sydney_user.id, date(2030, 1, 8))
    monday = overbooking_service.analyze_overbooking(db, sydney_user.id, MONDAY)

    assert tuesday["event_count"] == 1
    assert monday["event_count"] == 0

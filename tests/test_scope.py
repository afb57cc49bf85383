import datetime as dt

import pytest

from trip_engine.models import RegenerationScope
from trip_engine.scope import is_on_trip, past_days_place_names, plan_regeneration_scope

from scripted import make_day


def _at(day, hour, minute=0, tz=None):
    return dt.datetime(2025, 11, day, hour, minute, tzinfo=tz)


@pytest.mark.parametrize("now", [_at(20, 12), dt.datetime(2025, 1, 1, 9, 0)])
def test_before_the_trip_regenerates_everything(trip, now):
    scope = plan_regeneration_scope(now, trip)
    assert (scope.start_day_number, scope.end_day_number, scope.start_time) == (1, 10, None)


def test_after_the_trip_regenerates_everything(trip):
    scope = plan_regeneration_scope(_at(30, 0, 1), trip)
    assert (scope.start_day_number, scope.end_day_number) == (1, 10)
    assert "review" in scope.reason


def test_early_morning_starts_today_without_cutoff(trip):
    scope = plan_regeneration_scope(_at(23, 7, 59), trip)
    assert (scope.start_day_number, scope.end_day_number, scope.start_time) == (3, 10, None)


def test_late_evening_starts_tomorrow(trip):
    scope = plan_regeneration_scope(_at(23, 20, 0), trip)
    assert (scope.start_day_number, scope.start_time) == (4, None)


def test_late_evening_on_last_day_is_clamped(trip):
    scope = plan_regeneration_scope(_at(29, 21, 30), trip)
    assert (scope.start_day_number, scope.end_day_number) == (10, 10)


def test_daytime_sets_a_cutoff(trip):
    scope = plan_regeneration_scope(_at(23, 10, 15), trip)
    assert (scope.start_day_number, scope.start_time) == (3, "10:15")
    assert scope.describe(10) == "Regenerating Days 3-10 (starting from 10:15 on Day 3)"


def test_shared_travel_date_maps_to_the_arriving_city(trip):
    scope = plan_regeneration_scope(_at(25, 12, 0), trip)
    assert scope.start_day_number == 6


def test_aware_times_are_converted_to_trip_time(trip):
    # 12:30 at +05:00 is 07:30 in Lisbon
    now = _at(23, 12, 30, tz=dt.timezone(dt.timedelta(hours=5)))
    scope = plan_regeneration_scope(now, trip)
    assert (scope.start_day_number, scope.start_time) == (3, None)


def test_is_on_trip(trip):
    assert is_on_trip(_at(21, 9), trip)
    assert is_on_trip(_at(29, 23), trip)
    assert not is_on_trip(_at(30, 0), trip)


def test_past_days_place_names_skip_exempt_and_current_days():
    days = [make_day(1, ["Castle"]), make_day(2, ["Zoo"]), make_day(3, ["Park"])]
    days[0].places[0].category = "hotel"
    scope = RegenerationScope(start_day_number=3, end_day_number=3, reason="test")
    assert past_days_place_names(days, scope) == ["Zoo"]

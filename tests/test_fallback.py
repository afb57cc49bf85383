import dataclasses
import datetime as dt

from trip_engine.fallback import LISBON, build_fallback_day, catalogue_for, is_fallback_day
from trip_engine.preferences import overlaps_fixed
from trip_engine.timeutils import parse_hhmm
from trip_engine.trip_config import FixedSchedule, build_day_contexts

from scripted import make_day


def test_full_day_has_four_places_inside_the_window(trip):
    ctx = build_day_contexts(trip)[1]
    day = build_fallback_day(ctx)

    assert day.day_number == 2
    assert len(day.places) == 4
    assert all(parse_hhmm(p.start_time) >= parse_hhmm("09:00") for p in day.places)
    assert all(parse_hhmm(p.start_time) + p.duration <= parse_hhmm("22:00") for p in day.places)
    assert is_fallback_day(day)


def test_arrival_day_is_short_and_starts_after_check_in(trip):
    ctx = build_day_contexts(trip)[0]
    day = build_fallback_day(ctx)
    assert len(day.places) == 2
    assert day.places[0].start_time == "15:30"


def test_avoided_names_are_skipped(trip):
    ctx = build_day_contexts(trip)[1]
    avoid = [e.name for e in LISBON[:6]]
    day = build_fallback_day(ctx, avoid)
    assert not set(day.place_names()) & set(avoid)


def test_fixed_schedules_are_kept_clear(plain_trip):
    lunch = FixedSchedule(id="lunch", date=dt.date(2025, 11, 22), start_time="11:00", duration=120,
                          name="Booked Lunch", category="restaurant")
    trip = plain_trip.model_copy(update={"fixed_schedules": [lunch]})
    ctx = build_day_contexts(trip)[1]

    day = build_fallback_day(ctx)

    assert "Booked Lunch" in day.place_names()
    others = [p for p in day.places if p.name != "Booked Lunch"]
    assert others
    assert not any(overlaps_fixed(p.start_time, p.duration, [lunch]) for p in others)


def test_generic_catalogue_for_unknown_city(trip):
    ctx = dataclasses.replace(build_day_contexts(trip)[1], city="Porto")
    day = build_fallback_day(ctx)
    assert day.places
    assert all("Porto" in p.name for p in day.places)
    assert is_fallback_day(day)
    assert catalogue_for("Porto")[0].name == "Porto Old Town Walk"


def test_is_fallback_day_inspects_content():
    assert is_fallback_day(make_day(1, []))
    assert not is_fallback_day(make_day(1, ["Oceanário de Lisboa", "Praça do Rossio"]))
    marked = make_day(1, ["Somewhere"])
    marked.places[0].description = "Default plan while the planner is unavailable"
    assert is_fallback_day(marked)

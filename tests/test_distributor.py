import datetime as dt
import json

import pytest

from trip_engine.distributor import DayDistributor
from trip_engine.errors import JSONParseError, ValidationError
from trip_engine.master_pois import MasterPOIGenerator
from trip_engine.models import POICandidate
from trip_engine.trip_config import FixedSchedule, build_day_contexts

from scripted import DISTRIBUTE, MASTER, ScriptedGateway, distribution_response, master_response, place_dict


async def _collect(distributor, pool, contexts, used=()):
    return [result async for result in distributor.distribute(pool, contexts, used)]


def _poi(name, city="Lisbon", must=False):
    return POICandidate(name=name, city=city, is_must_visit=must, priority="high" if must else "medium")


@pytest.mark.asyncio
async def test_every_must_visit_is_scheduled(trip):
    gateway = ScriptedGateway({MASTER: master_response(trip), DISTRIBUTE: distribution_response})
    pool = await MasterPOIGenerator(gateway, trip).generate()
    contexts = build_day_contexts(trip)

    results = await _collect(DayDistributor(gateway, trip), pool, contexts)

    assert [r.city for r in results] == ["Lisbon", "London"]
    days = [d for r in results for d in r.days]
    assert [d.day_number for d in days] == list(range(1, 11))
    scheduled = {p.name for d in days for p in d.places}
    must = {p.name for pois in pool.values() for p in pois if p.is_must_visit}
    assert must and must <= scheduled
    for day in days:
        assert [p.id for p in day.places] == [f"{day.day_number}-{i}" for i in range(len(day.places))]


@pytest.mark.asyncio
async def test_must_visit_left_out_by_the_model_is_backfilled(plain_trip):
    contexts = [c for c in build_day_contexts(plain_trip) if c.city == "Lisbon"]
    pool = {"Lisbon": [_poi("Belém Tower", must=True), _poi("LX Factory")]}
    response = {"days": [{"dayNumber": c.day_number, "places": []} for c in contexts]}
    response["days"][2]["places"] = [place_dict("LX Factory", start="10:00", duration=90)]
    gateway = ScriptedGateway({DISTRIBUTE: json.dumps(response)})

    days = await DayDistributor(gateway, plain_trip).distribute_city("Lisbon", contexts, pool["Lisbon"])

    full_days = [d for d, c in zip(days, contexts) if not c.is_arrival_day and not c.is_departure_day]
    backfilled = [d for d in full_days if "Belém Tower" in d.place_names()]
    assert len(backfilled) == 1
    # least loaded full day is day 2, which had nothing
    assert backfilled[0].day_number == 2
    assert backfilled[0].places[-1].start_time == "09:00"


@pytest.mark.asyncio
async def test_repeated_places_within_a_city_are_dropped(plain_trip):
    contexts = [c for c in build_day_contexts(plain_trip) if c.city == "Lisbon"]
    response = {"days": [
        {"dayNumber": c.day_number, "places": [place_dict("Same Place"), place_dict(f"Unique {c.day_number}")]}
        for c in contexts
    ]}
    gateway = ScriptedGateway({DISTRIBUTE: json.dumps(response)})

    days = await DayDistributor(gateway, plain_trip).distribute_city("Lisbon", contexts, [])

    names = [n for d in days for n in d.place_names()]
    assert names.count("Same Place") == 1
    assert "Same Place" in days[0].place_names()


@pytest.mark.asyncio
async def test_days_are_matched_by_position_when_numbers_are_wrong(plain_trip):
    contexts = [c for c in build_day_contexts(plain_trip) if c.city == "London"]
    response = {"days": [
        {"dayNumber": 100 + i, "places": [place_dict(f"Stop {i}")]} for i in range(len(contexts))
    ]}
    gateway = ScriptedGateway({DISTRIBUTE: json.dumps(response)})

    days = await DayDistributor(gateway, plain_trip).distribute_city("London", contexts, [])

    assert [d.day_number for d in days] == [6, 7, 8, 9, 10]
    assert days[0].place_names() == ["Stop 0"]


@pytest.mark.asyncio
async def test_missing_days_and_bad_json_are_fatal(plain_trip):
    contexts = [c for c in build_day_contexts(plain_trip) if c.city == "London"]
    short = {"days": [{"dayNumber": 6, "places": [place_dict("A")]}]}
    with pytest.raises(ValidationError):
        await DayDistributor(ScriptedGateway({DISTRIBUTE: json.dumps(short)}), plain_trip).distribute_city(
            "London", contexts, [])
    with pytest.raises(ValidationError):
        await DayDistributor(ScriptedGateway({DISTRIBUTE: '{"days": []}'}), plain_trip).distribute_city(
            "London", contexts, [])
    with pytest.raises(JSONParseError):
        await DayDistributor(ScriptedGateway({DISTRIBUTE: "no"}), plain_trip).distribute_city(
            "London", contexts, [])


@pytest.mark.asyncio
async def test_cities_merge_in_trip_order(plain_trip):
    contexts = build_day_contexts(plain_trip)
    pool = {
        "Lisbon": [_poi("Shared Café"), _poi("Lisbon Only")],
        "London": [_poi("Shared Café", city="London"), _poi("London Only", city="London")],
    }
    gateway = ScriptedGateway({DISTRIBUTE: distribution_response})

    results = await _collect(DayDistributor(gateway, plain_trip, concurrency=2), pool, contexts, used=["Visited"])

    lisbon = [n for d in results[0].days for n in d.place_names()]
    london = [n for d in results[1].days for n in d.place_names()]
    assert "Shared Café" in lisbon
    assert "Shared Café" not in london
    assert "London Only" in london


@pytest.mark.asyncio
async def test_fixed_schedules_are_inserted(plain_trip):
    show = FixedSchedule(id="fado", date=dt.date(2025, 11, 23), start_time="20:00", duration=90,
                         name="Fado Show", category="show", city="Lisbon", requires_early_arrival=True)
    trip = plain_trip.model_copy(update={"fixed_schedules": [show]})
    contexts = [c for c in build_day_contexts(trip) if c.city == "Lisbon"]
    gateway = ScriptedGateway({DISTRIBUTE: distribution_response})

    days = await DayDistributor(gateway, trip).distribute_city("Lisbon", contexts, [_poi("Park")])

    day3 = days[2]
    assert day3.places[-1].name == "Fado Show"
    assert day3.places[-1].start_time == "20:00"
    prompt = gateway.prompts(DISTRIBUTE)[0]
    assert "Must arrive by: 19:30" in prompt

import json

import pytest

from trip_engine.day_generator import DayGenerator
from trip_engine.errors import ValidationError
from trip_engine.trip_config import build_day_contexts

from scripted import DAY, OPTIMIZE, PLACE, ScriptedGateway, make_day, place_dict


@pytest.mark.asyncio
async def test_generate_day_drops_avoided_places(trip):
    ctx = build_day_contexts(trip)[2]
    response = {"places": [place_dict("Castle", "10:00"), place_dict("Zoo", "13:00"), place_dict("park", "16:00")]}
    gateway = ScriptedGateway({DAY: json.dumps(response)})

    day = await DayGenerator(gateway, trip).generate_day(ctx, ["Park"])

    assert day.day_number == 3
    assert day.place_names() == ["Castle", "Zoo"]
    assert [p.id for p in day.places] == ["3-0", "3-1"]
    assert "- Park" in gateway.prompts(DAY)[0]


@pytest.mark.asyncio
async def test_generate_day_keeps_retained_places_and_cutoff(trip):
    ctx = build_day_contexts(trip)[2]
    morning = make_day(3, ["Breakfast", "Museum"]).places
    gateway = ScriptedGateway({DAY: json.dumps({"places": [place_dict("Garden", "14:00")]})})

    day = await DayGenerator(gateway, trip).generate_day(ctx, [], not_before="12:45", retained=morning)

    assert day.place_names() == ["Breakfast", "Museum", "Garden"]
    prompt = gateway.prompts(DAY)[0]
    assert "AVAILABLE TIME: 12:45 - 22:00" in prompt
    assert "- Museum" in prompt


@pytest.mark.asyncio
async def test_generate_day_without_places_is_an_error(trip):
    ctx = build_day_contexts(trip)[2]
    gateway = ScriptedGateway({DAY: '{"places": [{"name": ""}]}'})
    with pytest.raises(ValidationError):
        await DayGenerator(gateway, trip).generate_day(ctx)


@pytest.mark.asyncio
async def test_regenerate_place_keeps_id_and_retries_once(trip):
    day = make_day(2, ["Castle", "Zoo", "Park"])
    gateway = ScriptedGateway({PLACE: [json.dumps(place_dict("Zoo")), json.dumps({"place": place_dict("Aquarium")})]})

    place = await DayGenerator(gateway, trip).regenerate_place(day, 1, ["Castle"])

    assert place.name == "Aquarium"
    assert place.id == "2-1"
    assert len(gateway.prompts(PLACE)) == 2
    assert "- Zoo" in gateway.prompts(PLACE)[1]


@pytest.mark.asyncio
async def test_regenerate_place_gives_up_after_second_collision(trip):
    day = make_day(2, ["Castle", "Zoo"])
    gateway = ScriptedGateway({PLACE: [json.dumps(place_dict("Castle")), json.dumps(place_dict("zoo"))]})
    with pytest.raises(ValidationError):
        await DayGenerator(gateway, trip).regenerate_place(day, 1, ["Castle"])


@pytest.mark.asyncio
async def test_regenerate_place_fills_slot_start(trip):
    day = make_day(2, ["Castle", "Zoo"])
    alt = place_dict("Aquarium")
    del alt["startTime"]
    gateway = ScriptedGateway({PLACE: json.dumps(alt)})

    place = await DayGenerator(gateway, trip).regenerate_place(day, 1)

    # Castle 10:00 + 45 min + 15 min travel
    assert place.start_time == "11:00"


@pytest.mark.asyncio
async def test_optimize_day_preserves_ids(trip):
    ctx = build_day_contexts(trip)[1]
    places = make_day(2, ["Castle", "Zoo"]).places
    response = {"places": [place_dict("Zoo", "09:30"), place_dict("Castle", "12:00")]}
    gateway = ScriptedGateway({OPTIMIZE: json.dumps(response)})

    result = await DayGenerator(gateway, trip).optimize_day(ctx, places)

    assert [(p.id, p.name, p.start_time) for p in result] == [("2-0", "Zoo", "09:30"), ("2-1", "Castle", "12:00")]


@pytest.mark.asyncio
async def test_optimize_day_returns_input_on_failure(trip):
    ctx = build_day_contexts(trip)[1]
    places = make_day(2, ["Castle", "Zoo"]).places
    result = await DayGenerator(ScriptedGateway(), trip).optimize_day(ctx, places)
    assert result is places


@pytest.mark.asyncio
async def test_regenerate_place_is_pinned_to_the_slot(trip):
    day = make_day(2, ["Castle", "Zoo", "Park"])
    gateway = ScriptedGateway({PLACE: json.dumps(place_dict("Aquarium", "21:00"))})

    place = await DayGenerator(gateway, trip).regenerate_place(day, 1)

    assert place.start_time == "11:00"

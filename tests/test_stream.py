import datetime as dt
import json
import re

import pytest

from orchestrator.schemas import CompleteEvent, DayEvent, ErrorEvent, StreamRequest
from orchestrator.stream import DeadlineGateway, StreamOrchestrator
from trip_engine.errors import DeadlineExceededError
from trip_engine.trip_config import build_day_contexts

from scripted import (
    DAY,
    DISTRIBUTE,
    MASTER,
    PLACE,
    ScriptedGateway,
    day_responder,
    distribution_response,
    make_day,
    master_response,
    place_dict,
    place_responder,
)


async def _events(orchestrator, request, now=None):
    return [event async for event in orchestrator.events(request, now)]


def _check_terminal(events):
    terminals = [e for e in events if isinstance(e, (CompleteEvent, ErrorEvent))]
    assert len(terminals) == 1
    assert events[-1] is terminals[0]
    return terminals[0]


def _all_names(days):
    return [n.lower() for d in days for n in d.place_names()]


@pytest.mark.asyncio
async def test_two_phase_streams_every_day(trip, happy_gateway):
    events = await _events(StreamOrchestrator(happy_gateway, trip), StreamRequest())

    complete = _check_terminal(events)
    assert isinstance(complete, CompleteEvent)
    days = [e.day for e in events if isinstance(e, DayEvent)]
    assert sorted(d.day_number for d in days) == list(range(1, 11))
    assert complete.summary.ai_generated_count == 10
    assert complete.summary.fallback_count == 0
    assert complete.summary.duplicates == []
    assert not happy_gateway.prompts(DAY)
    assert len(happy_gateway.prompts(DISTRIBUTE)) == 2
    progress = [e.progress.current for e in events if isinstance(e, DayEvent)]
    assert progress == list(range(1, 11))


@pytest.mark.asyncio
async def test_phase_failure_falls_back_to_day_by_day(trip):
    gateway = ScriptedGateway({MASTER: "sorry, no JSON today", DAY: day_responder(), PLACE: place_responder()})

    events = await _events(StreamOrchestrator(gateway, trip), StreamRequest())

    complete = _check_terminal(events)
    assert isinstance(complete, CompleteEvent)
    assert len([e for e in events if isinstance(e, DayEvent)]) == 10
    assert len(gateway.prompts(DAY)) == 10
    assert complete.summary.ai_generated_count == 10
    assert any(getattr(e, "phase", None) == "legacy" for e in events)


@pytest.mark.asyncio
async def test_use_two_phase_false_goes_straight_to_legacy(trip, happy_gateway):
    events = await _events(StreamOrchestrator(happy_gateway, trip), StreamRequest(use_two_phase=False))
    _check_terminal(events)
    assert not happy_gateway.prompts(MASTER)
    assert len(happy_gateway.prompts(DAY)) == 10


@pytest.mark.asyncio
async def test_failing_days_use_fallback(trip):
    gateway = ScriptedGateway()

    events = await _events(StreamOrchestrator(gateway, trip), StreamRequest())

    complete = _check_terminal(events)
    assert isinstance(complete, CompleteEvent)
    assert complete.summary.fallback_count == 10
    assert complete.summary.ai_generated_count == 0
    days = [e.day for e in events if isinstance(e, DayEvent)]
    names = _all_names(days)
    assert len(names) == len(set(names))


@pytest.mark.asyncio
async def test_duplicates_from_parallel_days_are_replaced_before_emit(trip):
    gateway = ScriptedGateway({DAY: day_responder(shared="Oceanário"), PLACE: place_responder()})
    orchestrator = StreamOrchestrator(gateway, trip, legacy_concurrency=3)

    events = await _events(orchestrator, StreamRequest(use_two_phase=False))

    complete = _check_terminal(events)
    days = [e.day for e in events if isinstance(e, DayEvent)]
    names = _all_names(days)
    assert names.count("oceanário") == 1
    assert len(names) == len(set(names))
    assert complete.summary.duplicates == []
    assert gateway.prompts(PLACE)


@pytest.mark.asyncio
async def test_smart_regeneration_preserves_past_days(trip, happy_gateway):
    contexts = build_day_contexts(trip)
    existing = [make_day(c.day_number, [f"Past {c.day_number}-{i}" for i in range(2)], city=c.city, date=c.date)
                for c in contexts]
    request = StreamRequest(smart_regeneration=True, existing_days=existing)

    events = await _events(StreamOrchestrator(happy_gateway, trip), request, now=dt.datetime(2025, 11, 24, 12, 0))

    complete = _check_terminal(events)
    day_events = [e for e in events if isinstance(e, DayEvent)]
    preserved = [e for e in day_events if e.preserved]
    fresh = [e for e in day_events if not e.preserved]
    assert [e.day.day_number for e in preserved] == [1, 2, 3]
    # scope [4, 10]
    assert len(fresh) == 10 - 4 + 1
    assert complete.summary.preserved_count == 3
    assert not happy_gateway.prompts(MASTER)

    day4 = next(e.day for e in fresh if e.day.day_number == 4)
    assert day4.place_names()[:2] == ["Past 4-0", "Past 4-1"]
    first_prompt = happy_gateway.prompts(DAY)[0]
    assert "AVAILABLE TIME: 12:00 - 22:00" in first_prompt
    assert "- Past 1-0" in first_prompt
    assert "- Past 4-1" in first_prompt


@pytest.mark.asyncio
async def test_current_time_in_request_overrides_clock(trip, happy_gateway):
    request = StreamRequest(smart_regeneration=True, current_time=dt.datetime(2025, 11, 29, 21, 0))
    events = await _events(StreamOrchestrator(happy_gateway, trip), request, now=dt.datetime(2025, 11, 1, 9, 0))
    assert "Day 10" in events[0].message
    _check_terminal(events)


@pytest.mark.asyncio
async def test_spent_deadline_still_completes(trip, happy_gateway):
    orchestrator = StreamOrchestrator(happy_gateway, trip, deadline_sec=0, margin_sec=0)

    events = await _events(orchestrator, StreamRequest())

    complete = _check_terminal(events)
    assert isinstance(complete, CompleteEvent)
    assert complete.summary.deadline_exceeded
    assert complete.summary.fallback_count == 10
    assert happy_gateway.calls == []


@pytest.mark.asyncio
async def test_unexpected_errors_end_the_stream(trip):
    gateway = ScriptedGateway({MASTER: RuntimeError("kaboom")})
    events = await _events(StreamOrchestrator(gateway, trip), StreamRequest())
    terminal = _check_terminal(events)
    assert isinstance(terminal, ErrorEvent)
    assert terminal.error == "kaboom"


@pytest.mark.asyncio
async def test_collect_returns_days_and_summary(trip, happy_gateway):
    days, summary = await StreamOrchestrator(happy_gateway, trip).collect(StreamRequest())
    assert [d.day_number for d in days] == list(range(1, 11))
    assert summary.ai_generated_count == 10


@pytest.mark.asyncio
async def test_deadline_gateway_caps_timeouts(happy_gateway):
    now = [100.0]
    gateway = DeadlineGateway(happy_gateway, deadline_sec=30, margin_sec=5, clock=lambda: now[0])
    assert gateway.remaining() == 30
    now[0] = 126.0
    with pytest.raises(DeadlineExceededError):
        await gateway.generate("anything")
    assert gateway.exceeded


@pytest.mark.asyncio
async def test_second_phase_failure_fills_only_the_missing_city(trip):
    def distribute(prompt):
        if "days in London." in prompt:
            return "not json"
        return distribution_response(prompt)

    gateway = ScriptedGateway({
        MASTER: master_response(trip),
        DISTRIBUTE: distribute,
        DAY: day_responder(),
        PLACE: place_responder(),
    })

    events = await _events(StreamOrchestrator(gateway, trip), StreamRequest())

    complete = _check_terminal(events)
    assert isinstance(complete, CompleteEvent)
    numbers = [e.day.day_number for e in events if isinstance(e, DayEvent)]
    assert numbers == list(range(1, 11))
    legacy_days = sorted(int(re.search(r"for Day (\d+) \(", p).group(1)) for p in gateway.prompts(DAY))
    assert legacy_days == [6, 7, 8, 9, 10]
    assert complete.summary.ai_generated_count == 10


@pytest.mark.asyncio
async def test_replacements_keep_parallel_days_in_time_order(trip):
    def respond(prompt):
        number = int(re.search(r"for Day (\d+) \(", prompt).group(1))
        return json.dumps({"places": [place_dict("Shared Spot", "10:00"), place_dict(f"D{number} late", "18:00")]})

    counter = iter(range(1, 100))
    gateway = ScriptedGateway({
        DAY: respond,
        PLACE: lambda prompt: json.dumps(place_dict(f"Evening Alt {next(counter)}", "21:00")),
    })

    events = await _events(StreamOrchestrator(gateway, trip, legacy_concurrency=3), StreamRequest(use_two_phase=False))

    _check_terminal(events)
    days = [e.day for e in events if isinstance(e, DayEvent)]
    assert gateway.prompts(PLACE)
    for day in days:
        times = [p.start_time for p in day.places]
        assert times == sorted(times)
    names = _all_names(days)
    assert len(names) == len(set(names))

"""Single-day generation: the legacy per-day path and the per-place edits."""

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional, Sequence

from .errors import GenerationError, ValidationError
from .gateway import TextGenerator
from .models import DayItinerary, Place, name_key
from .preferences import (
    format_avoid_list,
    format_excluded_for_prompt,
    format_fixed_schedule_for_prompt,
    format_must_visit_for_prompt,
    merge_fixed_schedules,
)
from .sanitizer import parse_json, validate_payload
from .schemas import DayPlacesPayload, PlacePayload, valid_entries
from .timeutils import add_minutes, later_of, minutes_between
from .trip_config import DistributionContext, TripDetails

logger = logging.getLogger(__name__)

REGENERATE_TEMPERATURE = 0.9
DEFAULT_TRAVEL_MINUTES = 15

_PLACE_EXAMPLE = {
    "name": "Place name",
    "address": "Full address",
    "lat": 0.0,
    "lng": 0.0,
    "description": "Short description",
    "duration": 90,
    "category": "museum",
    "startTime": "10:00",
    "transportToNext": {"mode": "walk", "duration": 10, "distance": "0.8 km"},
    "kidsRating": "Why kids will like it",
}


class DayGenerator:
    def __init__(self, gateway: TextGenerator, trip: TripDetails) -> None:
        self.gateway = gateway
        self.trip = trip

    async def generate_day(
        self,
        ctx: DistributionContext,
        avoid_names: Sequence[str] = (),
        not_before: Optional[str] = None,
        retained: Iterable[Place] = (),
    ) -> DayItinerary:
        """Generate one day from scratch, or the rest of it after ``not_before``.

        ``retained`` places (already visited earlier that day) are kept as-is
        and the new places are appended after them.
        """
        retained = list(retained)
        start = later_of(ctx.available_start_time, not_before) if not_before else ctx.available_start_time
        avoid = list(avoid_names) + [p.name for p in retained]

        content = await self.gateway.generate(self.build_day_prompt(ctx, start, avoid))
        data = parse_json(content, context=f"day {ctx.day_number}")
        payload = validate_payload(data, DayPlacesPayload, context=f"day {ctx.day_number}")
        entries = valid_entries(payload.places, PlacePayload, context=f"day {ctx.day_number}")

        avoided = {name_key(n) for n in avoid}
        places: List[Place] = list(retained)
        for idx, entry in enumerate(entries):
            place = entry.to_place(f"{ctx.day_number}-{idx}")
            if not place.is_exempt and name_key(place.name) in avoided:
                logger.info(json.dumps({
                    "component": "day-generator",
                    "fn": "generate_day",
                    "day": ctx.day_number,
                    "dropped": place.name,
                }))
                continue
            avoided.add(name_key(place.name))
            places.append(place)
        if len(places) == len(retained) and not ctx.fixed_schedules:
            raise ValidationError(f"day {ctx.day_number}: no usable places in response")

        return DayItinerary(
            date=ctx.date,
            day_number=ctx.day_number,
            city=ctx.city,
            hotel=ctx.hotel,
            places=merge_fixed_schedules(places, ctx.fixed_schedules, ctx.day_number),
            flight=ctx.flight,
            train=ctx.train,
        ).finalize()

    async def regenerate_place(self, day: DayItinerary, index: int, avoid_names: Sequence[str] = ()) -> Place:
        current = day.places[index]
        slot_start = current.start_time
        if index > 0:
            prev = day.places[index - 1]
            if prev.start_time:
                travel = prev.transport_to_next.duration if prev.transport_to_next else DEFAULT_TRAVEL_MINUTES
                slot_start = add_minutes(prev.start_time, prev.duration + travel)
        available = current.duration
        if index + 1 < len(day.places) and slot_start and day.places[index + 1].start_time:
            available = max(minutes_between(slot_start, day.places[index + 1].start_time), 30)

        rejected = {name_key(current.name)} | {name_key(n) for n in avoid_names}
        tried: List[str] = []
        for attempt in range(2):
            prompt = self.build_place_prompt(day, current, slot_start, available, list(avoid_names) + tried)
            content = await self.gateway.generate(prompt, temperature=REGENERATE_TEMPERATURE)
            data = parse_json(content, context=f"place {current.id}")
            if isinstance(data, dict) and isinstance(data.get("place"), dict):
                data = data["place"]
            entry = validate_payload(data, PlacePayload, context=f"place {current.id}")
            if name_key(entry.name) not in rejected:
                place = entry.to_place(current.id)
                if slot_start:
                    place.start_time = slot_start
                logger.info(json.dumps({
                    "component": "day-generator",
                    "fn": "regenerate_place",
                    "day": day.day_number,
                    "before": current.name,
                    "after": place.name,
                    "attempt": attempt + 1,
                }))
                return place
            tried.append(entry.name)
        raise ValidationError(f"place {current.id}: alternatives kept repeating {tried}")

    async def optimize_day(self, ctx: DistributionContext, places: List[Place]) -> List[Place]:
        """Re-time a day's places; returns the input unchanged if that fails."""
        try:
            content = await self.gateway.generate(self.build_optimize_prompt(ctx, places))
            data = parse_json(content, context=f"optimize day {ctx.day_number}")
            payload = validate_payload(data, DayPlacesPayload, context=f"optimize day {ctx.day_number}")
            entries = valid_entries(payload.places, PlacePayload, context=f"optimize day {ctx.day_number}")
            if not entries:
                raise ValidationError(f"optimize day {ctx.day_number}: no places in response")
        except GenerationError as e:
            logger.warning(json.dumps({
                "component": "day-generator",
                "fn": "optimize_day",
                "day": ctx.day_number,
                "error": str(e),
            }))
            return places
        return [
            entry.to_place(places[i].id if i < len(places) else f"{ctx.day_number}-{i}")
            for i, entry in enumerate(entries)
        ]

    def _travelers(self) -> str:
        return ", ".join(f"{t.role} ({t.age})" for t in self.trip.travelers)

    def build_day_prompt(self, ctx: DistributionContext, start: str, avoid: Sequence[str]) -> str:
        if ctx.is_arrival_day:
            pacing = "ARRIVAL DAY: the family is tired, plan 2-3 light activities near the hotel"
        elif ctx.is_departure_day:
            pacing = "DEPARTURE DAY: plan 2-3 short activities close to the hotel"
        else:
            pacing = "FULL DAY: plan 4-6 activities including lunch and dinner"
        blocks = "\n\n".join(format_fixed_schedule_for_prompt(s) for s in ctx.fixed_schedules)
        transport = ""
        if ctx.flight:
            transport = f"Flight {ctx.flight.flight_number} departs {ctx.flight.departure.airport} at {ctx.flight.departure.time}"
        elif ctx.train:
            transport = f"Train {ctx.train.train_number} departs {ctx.train.departure.station} at {ctx.train.departure.time}"

        return f"""Generate a detailed day itinerary for Day {ctx.day_number} ({ctx.date}) in {ctx.city}.

TRAVELERS: {self._travelers()}
HOTEL: {ctx.hotel.name}, {ctx.hotel.address}
AVAILABLE TIME: {start} - {ctx.available_end_time}
{pacing}
{transport}

{format_must_visit_for_prompt(self.trip, ctx.city)}

{format_excluded_for_prompt(self.trip, ctx.city)}

{format_avoid_list(avoid)}

{blocks}

RULES:
- Start no earlier than {start} and finish by {ctx.available_end_time}
- Never include a place from the visited or excluded lists
- Keep travel between places short and note the transport to the next place
- Real addresses and approximate coordinates

Return ONLY a JSON object:
{json.dumps({"places": [_PLACE_EXAMPLE]}, indent=2)}"""

    def build_place_prompt(
        self,
        day: DayItinerary,
        current: Place,
        slot_start: Optional[str],
        available: int,
        avoid: Sequence[str],
    ) -> str:
        others = ", ".join(p.name for p in day.places if p.id != current.id) or "none"
        return f"""Generate a SINGLE alternative place to replace "{current.name}" on Day {day.day_number} ({day.date}) in {day.city}.

TRAVELERS: {self._travelers()}
HOTEL: {day.hotel.name}
TIME SLOT: starts at {slot_start or "any time"}, about {available} minutes available
CATEGORY HINT: {current.category}
OTHER PLACES THIS DAY: {others}

{format_excluded_for_prompt(self.trip, day.city)}

{format_avoid_list(avoid, heading="DO NOT SUGGEST")}

The replacement must be different from "{current.name}" and from every place listed above.

Return ONLY a JSON object for one place:
{json.dumps(_PLACE_EXAMPLE, indent=2)}"""

    def build_optimize_prompt(self, ctx: DistributionContext, places: List[Place]) -> str:
        current = json.dumps([p.to_wire() for p in places], indent=2, ensure_ascii=False)
        blocks = "\n\n".join(format_fixed_schedule_for_prompt(s) for s in ctx.fixed_schedules)
        return f"""Re-optimize this day's itinerary for Day {ctx.day_number} ({ctx.date}) in {ctx.city}.

HOTEL: {ctx.hotel.name}, {ctx.hotel.address}
AVAILABLE TIME: {ctx.available_start_time} - {ctx.available_end_time}

CURRENT PLACES:
{current}

{blocks}

Keep the same places in a sensible order; recompute startTime and transportToNext so that travel is
minimal, meals fall at normal times and nothing overlaps a fixed schedule.

Return ONLY a JSON object:
{json.dumps({"places": [_PLACE_EXAMPLE]}, indent=2)}"""

"""Phase 2: spread each city's POI pool over that city's days.

Cities are distributed independently and may run in parallel.  Each city keeps
its own used-name set while it is being built; the sets are merged afterwards
in trip order so a place claimed by an earlier city (or already visited)
never shows up again.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set

from .errors import ValidationError
from .gateway import TextGenerator
from .master_pois import MasterPool
from .models import DayItinerary, Place, POICandidate, name_key
from .preferences import format_fixed_schedule_for_prompt, merge_fixed_schedules
from .sanitizer import parse_json, validate_payload
from .schemas import DistributionPayload, PlacePayload, valid_entries
from .timeutils import add_minutes, parse_hhmm
from .trip_config import DistributionContext, TripDetails

logger = logging.getLogger(__name__)

BACKFILL_TRAVEL_MINUTES = 30


@dataclass
class CityDistribution:
    city: str
    days: List[DayItinerary]


def _last_end(places: Sequence[Place]) -> Optional[str]:
    latest: Optional[int] = None
    for place in places:
        if not place.start_time:
            continue
        try:
            end = parse_hhmm(place.start_time) + place.duration
        except ValueError:
            continue
        latest = end if latest is None else max(latest, end)
    if latest is None:
        return None
    return add_minutes("00:00", latest)


def _group_contexts(contexts: Iterable[DistributionContext]) -> Dict[str, List[DistributionContext]]:
    grouped: Dict[str, List[DistributionContext]] = {}
    for ctx in contexts:
        grouped.setdefault(ctx.city, []).append(ctx)
    return grouped


class DayDistributor:
    def __init__(self, gateway: TextGenerator, trip: TripDetails, concurrency: int = 2) -> None:
        self.gateway = gateway
        self.trip = trip
        self.concurrency = max(1, concurrency)

    async def distribute(
        self,
        pool: MasterPool,
        contexts: Sequence[DistributionContext],
        used_names: Iterable[str] = (),
    ) -> AsyncIterator[CityDistribution]:
        """Yield each city's finished days in trip order.

        A ``GenerationError`` from any city propagates out of the iterator;
        the remaining city tasks are cancelled.
        """
        grouped = _group_contexts(contexts)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(city: str, city_contexts: List[DistributionContext]) -> List[DayItinerary]:
            async with semaphore:
                return await self.distribute_city(city, city_contexts, pool.get(city, []))

        tasks = {
            city: asyncio.create_task(run(city, city_contexts))
            for city, city_contexts in grouped.items()
        }
        used: Set[str] = {name_key(n) for n in used_names}
        try:
            for city, task in tasks.items():
                days = await task
                for day in days:
                    kept = []
                    for place in day.places:
                        key = name_key(place.name)
                        if not place.is_exempt and key in used:
                            logger.info(json.dumps({
                                "component": "phase2",
                                "fn": "merge_cities",
                                "city": city,
                                "dropped": place.name,
                                "day": day.day_number,
                            }))
                            continue
                        kept.append(place)
                    day.places = kept
                    day.finalize()
                    used.update(name_key(n) for n in day.place_names())
                yield CityDistribution(city=city, days=days)
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()

    async def distribute_city(
        self,
        city: str,
        contexts: List[DistributionContext],
        pois: List[POICandidate],
    ) -> List[DayItinerary]:
        start_time = time.monotonic()
        prompt = self.build_prompt(city, contexts, pois)
        content = await self.gateway.generate(prompt)
        data = parse_json(content, context=f"distribution/{city}")
        payload = validate_payload(data, DistributionPayload, context=f"distribution/{city}")

        by_number = {ctx.day_number: ctx for ctx in contexts}
        assigned: Dict[int, List[PlacePayload]] = {}
        for position, raw_day in enumerate(payload.days):
            ctx = by_number.get(raw_day.day_number) if raw_day.day_number is not None else None
            if ctx is None or ctx.day_number in assigned:
                if position >= len(contexts) or contexts[position].day_number in assigned:
                    continue
                ctx = contexts[position]
            assigned[ctx.day_number] = valid_entries(
                raw_day.places, PlacePayload, context=f"distribution/{city}/day {ctx.day_number}"
            )

        missing = [ctx.day_number for ctx in contexts if ctx.day_number not in assigned]
        if missing:
            raise ValidationError(f"distribution/{city}: no places for day(s) {missing}")

        city_used: Set[str] = set()
        days: List[DayItinerary] = []
        for ctx in contexts:
            places: List[Place] = []
            for idx, entry in enumerate(assigned[ctx.day_number]):
                place = entry.to_place(f"{ctx.day_number}-{idx}")
                key = name_key(place.name)
                if not place.is_exempt:
                    if key in city_used:
                        continue
                    city_used.add(key)
                places.append(place)
            places = merge_fixed_schedules(places, ctx.fixed_schedules, ctx.day_number)
            days.append(DayItinerary(
                date=ctx.date,
                day_number=ctx.day_number,
                city=ctx.city,
                hotel=ctx.hotel,
                places=places,
                flight=ctx.flight,
                train=ctx.train,
            ))

        backfilled = self._backfill_must_visits(days, contexts, pois, city_used)
        for day in days:
            day.finalize()

        logger.info(json.dumps({
            "component": "phase2",
            "fn": "distribute_city",
            "city": city,
            "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
            "days": len(days),
            "places": sum(len(d.places) for d in days),
            "backfilled": backfilled,
        }))
        return days

    def _backfill_must_visits(
        self,
        days: List[DayItinerary],
        contexts: List[DistributionContext],
        pois: List[POICandidate],
        city_used: Set[str],
    ) -> List[str]:
        full_days = [
            (day, ctx) for day, ctx in zip(days, contexts)
            if not ctx.is_arrival_day and not ctx.is_departure_day
        ] or list(zip(days, contexts))

        added = []
        for poi in pois:
            if not poi.is_must_visit or name_key(poi.name) in city_used:
                continue
            day, ctx = min(full_days, key=lambda pair: len(pair[0].place_names()))
            last = _last_end(day.places)
            start = add_minutes(last, BACKFILL_TRAVEL_MINUTES) if last else ctx.available_start_time
            day.places.append(Place(
                id=f"{day.day_number}-{len(day.places)}",
                name=poi.name,
                address=poi.address,
                lat=poi.lat,
                lng=poi.lng,
                description=poi.description,
                duration=poi.duration,
                category=poi.category,
                start_time=start,
                kids_rating=poi.kids_rating,
            ))
            city_used.add(name_key(poi.name))
            added.append(poi.name)
        if added:
            logger.warning(json.dumps({
                "component": "phase2",
                "fn": "backfill_must_visits",
                "city": days[0].city if days else "",
                "added": added,
            }))
        return added

    def build_prompt(self, city: str, contexts: List[DistributionContext], pois: List[POICandidate]) -> str:
        poi_lines = []
        for poi in pois:
            marker = "[MUST-VISIT] " if poi.is_must_visit else ("[HIGH] " if poi.priority == "high" else "")
            line = f"- {marker}{poi.name} ({poi.category}, {poi.duration} min)"
            if poi.address:
                line += f" - {poi.address}"
            poi_lines.append(line)

        day_lines = []
        for ctx in contexts:
            line = f"Day {ctx.day_number} ({ctx.date}): available {ctx.available_start_time}-{ctx.available_end_time}"
            if ctx.is_arrival_day:
                line += " - ARRIVAL DAY (2-3 light activities)"
            elif ctx.is_departure_day:
                line += " - DEPARTURE DAY (2-3 light activities near the hotel)"
            else:
                line += " - FULL DAY (4-6 activities)"
            if ctx.flight:
                line += (f"\n   Flight {ctx.flight.flight_number} departs {ctx.flight.departure.airport} "
                         f"at {ctx.flight.departure.time}")
            if ctx.train:
                line += (f"\n   Train {ctx.train.train_number} departs {ctx.train.departure.station} "
                         f"at {ctx.train.departure.time}")
            for schedule in ctx.fixed_schedules:
                line += "\n   " + format_fixed_schedule_for_prompt(schedule).replace("\n", "\n   ")
            day_lines.append(line)

        hotel = contexts[0].hotel if contexts else self.trip.hotel_for(city)
        example = {
            "days": [{
                "dayNumber": contexts[0].day_number if contexts else 1,
                "places": [{
                    "name": "Place name",
                    "address": "Full address",
                    "lat": 0.0,
                    "lng": 0.0,
                    "description": "Short description",
                    "duration": 90,
                    "category": "museum",
                    "startTime": "09:30",
                    "transportToNext": {"mode": "walk", "duration": 15, "distance": "1.2 km"},
                    "kidsRating": "Why kids will like it",
                }],
            }],
        }

        return f"""Distribute the following Points of Interest across {len(contexts)} days in {city}.

HOTEL: {hotel.name}, {hotel.address}

AVAILABLE POIs:
{chr(10).join(poi_lines)}

DAYS:
{chr(10).join(day_lines)}

RULES:
1. Every [MUST-VISIT] POI MUST be scheduled exactly once
2. Prefer [HIGH] POIs over the rest
3. Never repeat a POI on two different days
4. Cluster each day geographically to keep travel short
5. Pace the day for young children: breaks, no more than 6 activities
6. Include lunch and dinner at restaurants from the list
7. Respect each day's available window and never overlap a fixed schedule
8. Use the POI names exactly as written above

RESPONSE FORMAT:
Return ONLY a JSON object like:
{json.dumps(example, indent=2)}

Distribute the POIs now:"""

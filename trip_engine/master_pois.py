"""Phase 1: one pool of candidate POIs per city for the whole trip."""

from __future__ import annotations

import json
import logging
import time
from typing import Dict, List, Sequence

from .errors import ValidationError
from .gateway import TextGenerator
from .models import POICandidate, name_key
from .preferences import (
    format_avoid_list,
    format_excluded_for_prompt,
    format_must_visit_for_prompt,
    is_excluded,
    is_must_visit,
    matches_any,
    must_visit_for_city,
)
from .sanitizer import parse_json
from .schemas import POIPayload, valid_entries
from .trip_config import TripDetails

logger = logging.getLogger(__name__)

POOL_MIN = 40
POOL_MAX = 60

MasterPool = Dict[str, List[POICandidate]]


def city_key(city: str) -> str:
    return city.strip().lower()


class MasterPOIGenerator:
    def __init__(self, gateway: TextGenerator, trip: TripDetails) -> None:
        self.gateway = gateway
        self.trip = trip

    async def generate(self, exclude_names: Sequence[str] = ()) -> MasterPool:
        """Ask for the candidate pool and return it keyed by city name.

        Raises ``JSONParseError`` / ``ValidationError`` (and provider errors)
        when the response cannot be turned into a pool; the orchestrator
        treats any of them as the end of the two-phase path.
        """
        start_time = time.monotonic()
        prompt = self.build_prompt(exclude_names)
        content = await self.gateway.generate(prompt)
        data = parse_json(content, context="master POI list")
        if not isinstance(data, dict):
            raise ValidationError("master POI list: expected a JSON object keyed by city")

        pool: MasterPool = {}
        for city in self.trip.cities:
            raw = data.get(city_key(city), data.get(city))
            if not isinstance(raw, list):
                raise ValidationError(f"master POI list: missing '{city_key(city)}' array")
            entries = valid_entries(raw, POIPayload, context=f"master POI list/{city}")
            pool[city] = self._postprocess(city, [e.to_candidate(city) for e in entries], exclude_names)
            if not pool[city]:
                raise ValidationError(f"master POI list: no usable POIs for {city}")

        log_data = {
            "component": "phase1",
            "fn": "generate_master_pois",
            "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
            "counts": {city: len(pois) for city, pois in pool.items()},
            "must_visit": sum(p.is_must_visit for pois in pool.values() for p in pois),
        }
        logger.info(json.dumps(log_data))
        return pool

    def _postprocess(self, city: str, pois: List[POICandidate], exclude_names: Sequence[str]) -> List[POICandidate]:
        kept: List[POICandidate] = []
        for poi in pois:
            if is_excluded(self.trip, poi.name, city) or matches_any(poi.name, exclude_names):
                logger.info(json.dumps({"component": "phase1", "fn": "drop_excluded", "city": city, "name": poi.name}))
                continue
            if not poi.is_must_visit and is_must_visit(self.trip, poi.name, city):
                poi = poi.model_copy(update={"is_must_visit": True, "priority": "high"})
            kept.append(poi)

        present = {name_key(p.name) for p in kept}
        for must in must_visit_for_city(self.trip, city):
            if must.priority != "high" or name_key(must.name) in present:
                continue
            if matches_any(must.name, exclude_names):
                continue
            if any(is_must_visit(self.trip, p.name, city) and name_key(must.name) in name_key(p.name) for p in kept):
                continue
            kept.append(POICandidate(
                name=must.name,
                description=must.notes or "",
                duration=must.estimated_duration or 90,
                category=must.category or "attraction",
                priority="high",
                is_must_visit=True,
                city=city,
            ))
            logger.warning(json.dumps({"component": "phase1", "fn": "add_missing_must_visit", "city": city,
                                       "name": must.name}))
        return kept

    def build_prompt(self, exclude_names: Sequence[str]) -> str:
        trip = self.trip
        total_days = trip.total_days
        travelers = "\n".join(f"- {t.role} ({t.age} years old)" for t in trip.travelers)
        overview = "\n".join(
            f"- {s.city}: {s.day_count} days ({s.start.isoformat()} to {s.end.isoformat()})" for s in trip.stays
        )
        hotels = "\n".join(f"- {s.city}: {s.hotel.name}, {s.hotel.address}" for s in trip.stays)
        must_visit = "\n\n".join(format_must_visit_for_prompt(trip, c) for c in trip.cities)
        excluded = "\n\n".join(filter(None, (format_excluded_for_prompt(trip, c) for c in trip.cities)))
        visited = format_avoid_list(exclude_names)

        days_by_city: Dict[str, int] = {}
        for stay in trip.stays:
            days_by_city[stay.city] = days_by_city.get(stay.city, 0) + stay.day_count
        shares = "\n".join(
            f"- {city}: ~{round(POOL_MIN * n / total_days)}-{round(POOL_MAX * n / total_days)} POIs (for {n} days)"
            for city, n in days_by_city.items()
        )
        example = {
            city_key(c): [{
                "name": "Place name",
                "address": "Full street address",
                "lat": 0.0,
                "lng": 0.0,
                "description": "Why the family will enjoy it",
                "duration": 90,
                "category": "museum",
                "priority": "high",
                "isMustVisit": True,
                "kidsRating": "What the kids will love",
            }]
            for c in trip.cities
        }

        return f"""You are a family travel expert creating a comprehensive master list of Points of Interest (POIs) for a {total_days}-day trip to {", ".join(trip.cities)}.

TRAVELERS:
{travelers}

TRIP OVERVIEW:
{overview}

HOTELS:
{hotels}

{must_visit}

{excluded}

{visited}

YOUR TASK:
Generate a master list of {POOL_MIN}-{POOL_MAX} family-friendly POIs in total for the ENTIRE trip.

REQUIREMENTS:
1. MUST-VISIT INCLUSION: every must-visit location above MUST appear, marked "isMustVisit": true
2. EXCLUSIONS: never include anything from the excluded or already-visited lists
3. VARIETY: museums, landmarks, parks, markets, activities, neighborhoods
4. GEOGRAPHIC DISTRIBUTION: cover different neighborhoods of each city
5. TIME: mix quick stops (30-60 min) with longer activities (2-3 hours)
6. MEALS: include 8-10 restaurant/cafe options per city
7. ACCURACY: real addresses and approximate coordinates

DISTRIBUTION GUIDE:
{shares}

PRIORITY LEVELS:
- high: must-visit attractions and iconic landmarks
- medium: highly recommended but flexible
- low: nice-to-have if time permits

RESPONSE FORMAT:
Return ONLY a JSON object with one array per city, keyed by lower-case city name:
{json.dumps(example, indent=2, ensure_ascii=False)}

Generate the master POI list now:"""

"""Single-shot actions behind ``POST /generate-itinerary``."""

import json
import logging
import time
from typing import Any, Dict, List, Optional, get_args

from trip_engine.day_generator import DayGenerator
from trip_engine.errors import GenerationError
from trip_engine.fallback import build_fallback_day
from trip_engine.models import DayItinerary, Place
from trip_engine.trip_config import DistributionContext, TripDetails, build_day_contexts

from .schemas import Action, ActionRequest, StreamRequest
from .stream import StreamOrchestrator

logger = logging.getLogger(__name__)

ACTIONS = get_args(Action)


class ActionError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def _context(trip: TripDetails, day_number: Optional[int]) -> DistributionContext:
    if day_number is None:
        raise ActionError(400, "dayNumber is required")
    for ctx in build_day_contexts(trip):
        if ctx.day_number == day_number:
            return ctx
    raise ActionError(404, f"Day {day_number} not found")


def _places(body: ActionRequest) -> List[Place]:
    if not body.places:
        raise ActionError(400, "places are required")
    return body.places


async def run_action(
    body: ActionRequest,
    *,
    orchestrator: StreamOrchestrator,
    generator: DayGenerator,
    trip: TripDetails,
) -> Dict[str, Any]:
    if body.action not in ACTIONS:
        raise ActionError(400, f"Invalid action: {body.action}")

    start_time = time.monotonic()
    if body.action == "generate-all":
        request = StreamRequest(visited_places=body.avoid_places, current_time=body.current_time)
        days, summary = await orchestrator.collect(request)
        result = {
            "days": [d.to_wire() for d in days],
            "duplicates": [g.to_wire() for g in summary.duplicates],
        }

    elif body.action == "regenerate-day":
        ctx = _context(trip, body.day_number)
        try:
            day = await generator.generate_day(ctx, body.avoid_places)
        except GenerationError as e:
            logger.warning(json.dumps({"component": "actions", "fn": "regenerate-day", "day": ctx.day_number,
                                       "error": str(e)}))
            day = build_fallback_day(ctx, body.avoid_places)
        result = {"day": day.to_wire()}

    elif body.action == "optimize-day":
        ctx = _context(trip, body.day_number)
        places = await generator.optimize_day(ctx, _places(body))
        result = {"places": [p.to_wire() for p in places]}

    else:
        ctx = _context(trip, body.day_number)
        places = _places(body)
        if body.place_index is None:
            raise ActionError(400, "placeIndex is required")
        if not 0 <= body.place_index < len(places):
            raise ActionError(400, f"placeIndex {body.place_index} is out of range")
        day = DayItinerary(date=ctx.date, day_number=ctx.day_number, city=ctx.city, hotel=ctx.hotel,
                           places=places)
        place = await generator.regenerate_place(day, body.place_index, body.avoid_places)
        result = {"place": place.to_wire()}

    logger.info(json.dumps({
        "component": "actions",
        "fn": body.action,
        "latency_ms": f"{(time.monotonic() - start_time) * 1000:.2f}",
        "ok": True,
    }))
    return result

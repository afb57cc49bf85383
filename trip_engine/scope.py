"""Work out which part of the trip to regenerate from the current time."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from .models import DayItinerary, RegenerationScope
from .trip_config import TripDetails, build_day_contexts

EARLY_MORNING_HOUR = 8
LATE_EVENING_HOUR = 20


def trip_local(now: dt.datetime, trip: TripDetails) -> dt.datetime:
    """Aware datetimes are converted into the trip timezone; naive ones are taken as trip-local."""
    if now.tzinfo is None:
        return now
    return now.astimezone(ZoneInfo(trip.timezone)).replace(tzinfo=None)


def day_number_for(date: dt.date, trip: TripDetails) -> Optional[int]:
    # The shared travel date belongs to both stays; the later stay wins.
    found = None
    for ctx in build_day_contexts(trip):
        if ctx.date == date.isoformat():
            found = ctx.day_number
    return found


def is_on_trip(now: dt.datetime, trip: TripDetails) -> bool:
    local = trip_local(now, trip)
    return trip.start_date <= local.date() <= trip.end_date


def plan_regeneration_scope(now: dt.datetime, trip: TripDetails) -> RegenerationScope:
    total = trip.total_days
    local = trip_local(now, trip)
    today = local.date()

    if today < trip.start_date:
        return RegenerationScope(start_day_number=1, end_day_number=total, reason="Trip has not started yet")
    if today > trip.end_date:
        return RegenerationScope(start_day_number=1, end_day_number=total,
                                 reason="Trip ended, regenerating for review")

    day_number = day_number_for(today, trip)
    if day_number is None:
        # Gap between stays: regenerate everything from the next configured day.
        later = [c.day_number for c in build_day_contexts(trip) if c.date > today.isoformat()]
        start = later[0] if later else total
        return RegenerationScope(start_day_number=start, end_day_number=total,
                                 reason="Between stays, regenerating upcoming days")

    if local.hour < EARLY_MORNING_HOUR:
        return RegenerationScope(start_day_number=day_number, end_day_number=total,
                                 reason="Early morning, regenerating today onward")
    if local.hour >= LATE_EVENING_HOUR:
        return RegenerationScope(start_day_number=min(day_number + 1, total), end_day_number=total,
                                 reason="Late evening, regenerating from tomorrow")
    return RegenerationScope(
        start_day_number=day_number,
        end_day_number=total,
        start_time=local.strftime("%H:%M"),
        reason="Regenerating remaining activities from now",
    )


def past_days_place_names(days: Sequence[DayItinerary], scope: RegenerationScope) -> List[str]:
    names: List[str] = []
    for day in sorted(days, key=lambda d: d.day_number):
        if day.day_number < scope.start_day_number:
            names.extend(day.place_names())
    return names

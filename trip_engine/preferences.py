"""Must-visit, excluded, and fixed-schedule helpers shared by every prompt."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from .models import Place, name_key
from .timeutils import add_minutes, parse_hhmm
from .trip_config import ExcludedPOI, FixedSchedule, MustVisitPOI, TripDetails

RULE = "=" * 60


def _fuzzy_match(a: str, b: str) -> bool:
    a, b = name_key(a), name_key(b)
    if not a or not b:
        return False
    return a == b or a in b or b in a


def must_visit_for_city(trip: TripDetails, city: str) -> List[MustVisitPOI]:
    return [poi for poi in trip.must_visit if poi.city == city]


def is_must_visit(trip: TripDetails, name: str, city: str) -> bool:
    return any(_fuzzy_match(poi.name, name) for poi in must_visit_for_city(trip, city))


def format_must_visit_for_prompt(trip: TripDetails, city: str) -> str:
    pois = must_visit_for_city(trip, city)
    if not pois:
        return f"No specific must-visit locations configured for {city}."

    lines = [f"MUST-VISIT LOCATIONS FOR {city.upper()}:", ""]
    for label, level in (
        ("HIGH PRIORITY (MUST INCLUDE)", "high"),
        ("MEDIUM PRIORITY (STRONGLY PREFER)", "medium"),
        ("LOW PRIORITY (NICE TO HAVE)", "low"),
    ):
        group = [p for p in pois if p.priority == level]
        if not group:
            continue
        lines.append(f"{label}:")
        for poi in group:
            line = f"- {poi.name}"
            if poi.category:
                line += f" ({poi.category})"
            if poi.estimated_duration:
                line += f" - ~{poi.estimated_duration} min"
            if poi.preferred_time_of_day != "any":
                line += f" - Best: {poi.preferred_time_of_day}"
            if poi.notes and level == "high":
                line += f"\n  -> {poi.notes}"
            lines.append(line)
        lines.append("")
    return "\n".join(lines).rstrip()


def excluded_for_city(trip: TripDetails, city: str) -> List[ExcludedPOI]:
    return [poi for poi in trip.excluded if poi.city in (city, "Any")]


def is_excluded(trip: TripDetails, name: str, city: str) -> bool:
    return any(_fuzzy_match(poi.name, name) for poi in excluded_for_city(trip, city))


def matches_any(name: str, names: Iterable[str]) -> bool:
    key = name_key(name)
    return any(key == name_key(other) for other in names)


def format_excluded_for_prompt(trip: TripDetails, city: str) -> str:
    excluded = excluded_for_city(trip, city)
    if not excluded:
        return ""
    listing = "\n".join(
        f"  - {poi.name}" + (f" ({poi.reason})" if poi.reason else "") for poi in excluded
    )
    return (
        f"{RULE}\nEXCLUDED PLACES IN {city.upper()} - DO NOT SUGGEST THESE\n{RULE}\n"
        f"{listing}\n"
        "If a place is similar or related to these, avoid it as well.\n"
        f"{RULE}"
    )


def format_avoid_list(names: Sequence[str], heading: str = "ALREADY VISITED (DO NOT INCLUDE)") -> str:
    if not names:
        return ""
    unique: List[str] = []
    seen = set()
    for name in names:
        key = name_key(name)
        if key and key not in seen:
            seen.add(key)
            unique.append(name)
    return f"{heading}:\n" + "\n".join(f"- {n}" for n in unique)


def blocked_interval(schedule: FixedSchedule) -> Tuple[str, str]:
    """The window nothing else may overlap, including the early-arrival buffer."""
    begin = schedule.start_time
    if schedule.requires_early_arrival:
        begin = add_minutes(schedule.start_time, -schedule.buffer_minutes)
    return begin, add_minutes(schedule.start_time, schedule.duration)


def overlaps_fixed(start: str, duration: int, schedules: Sequence[FixedSchedule]) -> bool:
    s = parse_hhmm(start)
    e = s + duration
    for schedule in schedules:
        b_start, b_end = (parse_hhmm(t) for t in blocked_interval(schedule))
        if s < b_end and b_start < e:
            return True
    return False


def format_fixed_schedule_for_prompt(schedule: FixedSchedule) -> str:
    arrive_by, end = blocked_interval(schedule)
    lines = [
        "FIXED SCHEDULE - CANNOT BE CHANGED:",
        f"   Name: {schedule.name}",
        f"   Time: {schedule.start_time} - {end} ({schedule.duration} minutes)",
    ]
    if schedule.requires_early_arrival:
        lines.append(f"   Must arrive by: {arrive_by} ({schedule.buffer_minutes} min early)")
    lines.append(f"   Location: {schedule.address}")
    lines.append(f"   Category: {schedule.category}")
    if schedule.booking_reference:
        lines.append(f"   Booking: {schedule.booking_reference}")
    if schedule.notes:
        lines.append(f"   Notes: {schedule.notes}")
    lines.append(f"   DO NOT schedule any activities during {arrive_by} - {end}")
    lines.append("   Plan activities BEFORE or AFTER this block and allow travel time to reach it")
    return "\n".join(lines)


def fixed_schedule_place(schedule: FixedSchedule, day_number: int) -> Place:
    return Place(
        id=f"{day_number}-fixed-{schedule.id}",
        name=schedule.name,
        address=schedule.address,
        lat=schedule.lat,
        lng=schedule.lng,
        description=schedule.description or f"Pre-booked {schedule.category}",
        duration=schedule.duration,
        category=schedule.category,
        start_time=schedule.start_time,
    )


def merge_fixed_schedules(places: List[Place], schedules: Sequence[FixedSchedule], day_number: int) -> List[Place]:
    """Insert the day's bookings, dropping model copies of the same events."""
    if not schedules:
        return places
    booked = {name_key(s.name) for s in schedules}
    merged = [p for p in places if name_key(p.name) not in booked]
    merged.extend(fixed_schedule_place(s, day_number) for s in schedules)
    return merged

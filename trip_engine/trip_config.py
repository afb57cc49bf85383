"""Trip configuration: who travels, where they stay, and what is pre-booked.

The default trip mirrors the family Lisbon + London itinerary the planner was
built for.  Point ``TRIP_CONFIG_PATH`` at a JSON file with the same shape to
plan a different journey.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field

from .errors import ConfigurationError
from .models import Flight, FlightEndpoint, Hotel, Priority, Train, Traveler, WireModel

logger = logging.getLogger(__name__)

DEFAULT_DAY_START = "09:00"
DEFAULT_DAY_END = "22:00"


class CityStay(WireModel):
    city: str
    start: dt.date
    end: dt.date
    hotel: Hotel
    arrival_available_from: str = "15:00"
    departure_available_until: str = "10:00"

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1


class MustVisitPOI(WireModel):
    id: str
    name: str
    city: str
    priority: Priority = "high"
    category: Optional[str] = None
    notes: Optional[str] = None
    estimated_duration: Optional[int] = None
    preferred_time_of_day: Literal["morning", "afternoon", "evening", "any"] = "any"


class ExcludedPOI(WireModel):
    id: str
    name: str
    city: str = "Any"
    reason: Optional[str] = None
    category: Optional[str] = None


class FixedSchedule(WireModel):
    id: str
    date: dt.date
    start_time: str
    duration: int
    name: str
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    description: str = ""
    category: Literal["concert", "restaurant", "show", "tour", "appointment", "other"] = "other"
    city: Optional[str] = None
    booking_reference: Optional[str] = None
    notes: Optional[str] = None
    requires_early_arrival: bool = False
    buffer_minutes: int = 30


class TripDetails(WireModel):
    travelers: List[Traveler]
    stays: List[CityStay]
    flights: List[Flight] = Field(default_factory=list)
    trains: List[Train] = Field(default_factory=list)
    must_visit: List[MustVisitPOI] = Field(default_factory=list)
    excluded: List[ExcludedPOI] = Field(default_factory=list)
    fixed_schedules: List[FixedSchedule] = Field(default_factory=list)
    timezone: str = "Europe/Lisbon"

    @property
    def cities(self) -> List[str]:
        seen: List[str] = []
        for stay in self.stays:
            if stay.city not in seen:
                seen.append(stay.city)
        return seen

    @property
    def start_date(self) -> dt.date:
        return self.stays[0].start

    @property
    def end_date(self) -> dt.date:
        return self.stays[-1].end

    @property
    def total_days(self) -> int:
        return sum(stay.day_count for stay in self.stays)

    def hotel_for(self, city: str) -> Hotel:
        for stay in self.stays:
            if stay.city == city:
                return stay.hotel
        raise ConfigurationError(f"no stay configured for {city}")


@dataclass
class DistributionContext:
    """Everything a prompt needs to know about one calendar day."""

    day_number: int
    date: str
    city: str
    hotel: Hotel
    is_arrival_day: bool
    is_departure_day: bool
    available_start_time: str
    available_end_time: str
    fixed_schedules: List[FixedSchedule] = field(default_factory=list)
    flight: Optional[Flight] = None
    train: Optional[Train] = None
    day_in_city: int = 1
    days_in_city: int = 1


def build_day_contexts(trip: TripDetails) -> List[DistributionContext]:
    contexts: List[DistributionContext] = []
    day_number = 0
    for stay in trip.stays:
        for offset in range(stay.day_count):
            day_number += 1
            day = stay.start + dt.timedelta(days=offset)
            iso = day.isoformat()
            arrival = offset == 0
            departure = offset == stay.day_count - 1
            contexts.append(DistributionContext(
                day_number=day_number,
                date=iso,
                city=stay.city,
                hotel=stay.hotel,
                is_arrival_day=arrival,
                is_departure_day=departure,
                available_start_time=stay.arrival_available_from if arrival else DEFAULT_DAY_START,
                available_end_time=stay.departure_available_until if departure else DEFAULT_DAY_END,
                fixed_schedules=[
                    s for s in trip.fixed_schedules
                    if s.date == day and (s.city is None or s.city == stay.city)
                ],
                flight=next((f for f in trip.flights if f.date == iso and f.departure.city == stay.city), None),
                train=next((t for t in trip.trains if t.date == iso and t.departure.city == stay.city), None),
                day_in_city=offset + 1,
                days_in_city=stay.day_count,
            ))
    return contexts


def default_trip() -> TripDetails:
    return TripDetails(
        travelers=[
            Traveler(role="Dad", age=46),
            Traveler(role="Mom", age=39),
            Traveler(role="Girl", age=9),
            Traveler(role="Boy", age=6),
        ],
        stays=[
            CityStay(
                city="Lisbon",
                start=dt.date(2025, 11, 21),
                end=dt.date(2025, 11, 25),
                hotel=Hotel(
                    name="Hotel Avenida Palace",
                    address="R. 1º de Dezembro 123, 1200-359 Lisboa, Portugal",
                    lat=38.71493,
                    lng=-9.14118,
                ),
                arrival_available_from="15:30",
                departure_available_until="09:00",
            ),
            CityStay(
                city="London",
                start=dt.date(2025, 11, 25),
                end=dt.date(2025, 11, 29),
                hotel=Hotel(
                    name="Hyatt Regency London Blackfriars",
                    address="1 Blackfriars, London SE1 8NZ, United Kingdom",
                    lat=51.51226,
                    lng=-0.10464,
                ),
                arrival_available_from="16:00",
                departure_available_until="08:00",
            ),
        ],
        flights=[
            Flight(
                flight_number="BA0501",
                date="2025-11-25",
                departure=FlightEndpoint(airport="LIS", city="Lisbon", time="11:40"),
                arrival=FlightEndpoint(airport="LHR", city="London", time="14:20"),
            ),
        ],
        must_visit=_DEFAULT_MUST_VISIT,
    )


_DEFAULT_MUST_VISIT = [
    MustVisitPOI(id="oceanario-lisboa", name="Oceanário de Lisboa", city="Lisbon", category="aquarium",
                 notes="One of the best aquariums in Europe, perfect for kids", estimated_duration=120,
                 preferred_time_of_day="morning"),
    MustVisitPOI(id="belem-tower", name="Belém Tower", city="Lisbon", category="landmark",
                 notes="Iconic UNESCO World Heritage site", estimated_duration=60, preferred_time_of_day="morning"),
    MustVisitPOI(id="jeronimos-monastery", name="Jerónimos Monastery", city="Lisbon", category="landmark",
                 notes="UNESCO World Heritage site, stunning architecture", estimated_duration=90,
                 preferred_time_of_day="morning"),
    MustVisitPOI(id="pasteis-de-belem", name="Pastéis de Belém", city="Lisbon", category="restaurant",
                 notes="Original pastel de nata since 1837", estimated_duration=30),
    MustVisitPOI(id="castle-sao-jorge", name="Castle of São Jorge", city="Lisbon", category="landmark",
                 notes="Historic castle with panoramic city views", estimated_duration=120,
                 preferred_time_of_day="afternoon"),
    MustVisitPOI(id="tram-28", name="Tram 28 Experience", city="Lisbon", category="activity",
                 estimated_duration=60),
    MustVisitPOI(id="time-out-market", name="Time Out Market Lisboa", city="Lisbon", priority="medium",
                 category="restaurant", estimated_duration=90),
    MustVisitPOI(id="santa-justa", name="Elevador de Santa Justa", city="Lisbon", priority="medium",
                 category="landmark", estimated_duration=45),
    MustVisitPOI(id="alfama", name="Alfama District", city="Lisbon", priority="medium",
                 category="neighborhood", estimated_duration=120, preferred_time_of_day="afternoon"),
    MustVisitPOI(id="lisbon-zoo", name="Lisbon Zoo", city="Lisbon", priority="low", category="zoo",
                 estimated_duration=180, preferred_time_of_day="morning"),
    MustVisitPOI(id="tower-of-london", name="Tower of London", city="London", category="landmark",
                 notes="Crown Jewels and Beefeater tours", estimated_duration=150, preferred_time_of_day="morning"),
    MustVisitPOI(id="british-museum", name="British Museum", city="London", category="museum",
                 notes="World-class museum, free entry, Egyptian mummies fascinate kids", estimated_duration=120),
    MustVisitPOI(id="natural-history-museum", name="Natural History Museum", city="London", category="museum",
                 notes="Dinosaurs! Perfect for kids, free entry", estimated_duration=150,
                 preferred_time_of_day="morning"),
    MustVisitPOI(id="buckingham-palace", name="Buckingham Palace", city="London", category="landmark",
                 notes="Changing of the Guard ceremony (check schedule)", estimated_duration=90,
                 preferred_time_of_day="morning"),
    MustVisitPOI(id="borough-market", name="Borough Market", city="London", category="market",
                 notes="Historic food market, great for lunch", estimated_duration=90),
    MustVisitPOI(id="covent-garden", name="Covent Garden", city="London", priority="medium",
                 category="neighborhood", notes="Street performers, shops, near theatres", estimated_duration=90,
                 preferred_time_of_day="afternoon"),
    MustVisitPOI(id="sky-garden", name="Sky Garden", city="London", priority="medium", category="landmark",
                 notes="Free panoramic views (book in advance)", estimated_duration=60,
                 preferred_time_of_day="afternoon"),
    MustVisitPOI(id="hamleys", name="Hamleys Toy Store", city="London", priority="medium", category="shop",
                 estimated_duration=60),
    MustVisitPOI(id="science-museum", name="Science Museum", city="London", priority="low", category="museum",
                 estimated_duration=120, preferred_time_of_day="afternoon"),
]


def load_trip_details(path: Optional[str]) -> TripDetails:
    if not path:
        return default_trip()
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        trip = TripDetails.model_validate(raw)
    except (OSError, ValueError) as e:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigurationError(f"could not load trip configuration from {path}: {e}") from e
    if not trip.stays:
        raise ConfigurationError(f"trip configuration {path} has no stays")
    for prev, nxt in zip(trip.stays, trip.stays[1:]):
        if nxt.start < prev.end:
            raise ConfigurationError(f"stay in {nxt.city} starts before the {prev.city} stay ends")
    logger.info(json.dumps({
        "component": "trip-config",
        "fn": "load",
        "path": str(path),
        "cities": trip.cities,
        "days": trip.total_days,
    }))
    return trip

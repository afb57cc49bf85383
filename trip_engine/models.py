"""Shared data structures for trip itineraries.

All models serialize with camelCase keys (``dayNumber``, ``startTime``,
``transportToNext``) because that is what the browser client stores, and
accept either spelling on input.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .timeutils import parse_hhmm

# Categories allowed to repeat across days (hotel stops, airport runs, booked shows).
EXEMPT_CATEGORIES = frozenset({"hotel", "airport", "show", "concert"})

Priority = Literal["high", "medium", "low"]


def name_key(name: str) -> str:
    return (name or "").strip().lower()


def is_exempt(category: Optional[str]) -> bool:
    return (category or "").strip().lower() in EXEMPT_CATEGORIES


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Hotel(WireModel):
    name: str
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None


class TransportLeg(WireModel):
    mode: str = "walk"
    duration: int = 0
    distance: Optional[str] = None


class POICandidate(WireModel):
    """A Phase 1 pool entry. Immutable once it is in the pool."""

    model_config = ConfigDict(frozen=True)

    name: str
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    description: str = ""
    duration: int = 90
    category: str = "attraction"
    priority: Priority = "medium"
    is_must_visit: bool = False
    city: str
    kids_rating: Optional[str] = None


class Place(WireModel):
    id: str
    name: str
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    description: str = ""
    duration: int = 90
    category: str = "attraction"
    start_time: Optional[str] = None
    transport_to_next: Optional[TransportLeg] = None
    kids_rating: Optional[str] = None

    @property
    def is_exempt(self) -> bool:
        return is_exempt(self.category)


class FlightEndpoint(WireModel):
    airport: str
    city: str
    time: str


class Flight(WireModel):
    flight_number: str
    date: str
    departure: FlightEndpoint
    arrival: FlightEndpoint


class TrainEndpoint(WireModel):
    station: str
    city: str
    time: str


class Train(WireModel):
    train_number: str
    date: str
    departure: TrainEndpoint
    arrival: TrainEndpoint


def _start_sort_key(place: Place) -> int:
    if not place.start_time:
        return 24 * 60
    try:
        return parse_hhmm(place.start_time)
    except ValueError:
        return 24 * 60


class DayItinerary(WireModel):
    date: str
    day_number: int = Field(ge=1)
    city: str
    hotel: Hotel
    places: List[Place] = Field(default_factory=list)
    flight: Optional[Flight] = None
    train: Optional[Train] = None

    def finalize(self) -> "DayItinerary":
        """Sort places chronologically and give them day-scoped ids."""
        self.sort_places()
        for idx, place in enumerate(self.places):
            place.id = f"{self.day_number}-{idx}"
        return self

    def sort_places(self) -> None:
        """Chronological order; ids are left as they are."""
        self.places.sort(key=_start_sort_key)

    def place_names(self, include_exempt: bool = False) -> List[str]:
        return [p.name for p in self.places if include_exempt or not p.is_exempt]


class Traveler(WireModel):
    role: str
    age: int


class Trip(WireModel):
    travelers: List[Traveler] = Field(default_factory=list)
    days: List[DayItinerary] = Field(default_factory=list)
    start_date: str
    end_date: str

    def validate_days(self) -> None:
        numbers = [d.day_number for d in self.days]
        expected = list(range(1, len(self.days) + 1))
        if sorted(numbers) != expected:
            raise ValidationError(f"day numbers must be exactly 1..{len(self.days)}, got {sorted(numbers)}")


class RegenerationScope(WireModel):
    start_day_number: int
    end_day_number: int
    start_time: Optional[str] = None
    reason: str

    def describe(self, total_days: int) -> str:
        start, end = self.start_day_number, self.end_day_number
        if start == 1 and end == total_days and not self.start_time:
            return f"Regenerating entire trip (all {total_days} days)"
        if start == end:
            if self.start_time:
                return f"Regenerating Day {start} from {self.start_time} onwards"
            return f"Regenerating Day {start}"
        if self.start_time:
            return f"Regenerating Days {start}-{end} (starting from {self.start_time} on Day {start})"
        return f"Regenerating Days {start}-{end}"


class DuplicateGroup(WireModel):
    location: str
    days: List[int]

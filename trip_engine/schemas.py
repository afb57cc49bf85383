"""Schemas for what the model sends back.

Parsed JSON is checked against these right after sanitizing; nothing past
this boundary touches raw dicts.  Fields are lenient about the usual model
sloppiness (``"90 min"``, ``"9:00"``, missing category) but strict about
structure.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .models import Place, POICandidate, TransportLeg, WireModel
from .timeutils import normalize_hhmm

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _coerce_minutes(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return max(int(value), 0)
    m = _NUMBER.search(str(value))
    return max(int(float(m.group(0))), 0) if m else default


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class TransportPayload(WireModel):
    mode: str = "walk"
    duration: int = 0
    distance: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _mode(cls, v: Any) -> str:
        return str(v).strip().lower() if v else "walk"

    @field_validator("duration", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> int:
        return _coerce_minutes(v, 0)

    @field_validator("distance", mode="before")
    @classmethod
    def _distance(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)


class PlacePayload(WireModel):
    name: str = Field(min_length=1)
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    description: str = ""
    duration: int = 90
    category: str = "attraction"
    start_time: Optional[str] = None
    transport_to_next: Optional[TransportPayload] = None
    kids_rating: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("address", "description", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def _coord(cls, v: Any) -> Optional[float]:
        return _coerce_float(v)

    @field_validator("duration", mode="before")
    @classmethod
    def _duration(cls, v: Any) -> int:
        return _coerce_minutes(v, 90) or 90

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> str:
        return str(v).strip().lower() if v else "attraction"

    @field_validator("start_time", mode="before")
    @classmethod
    def _start(cls, v: Any) -> Optional[str]:
        return normalize_hhmm(v) if v else None

    @field_validator("transport_to_next", mode="before")
    @classmethod
    def _transport(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    def to_place(self, place_id: str) -> Place:
        return Place(
            id=place_id,
            name=self.name,
            address=self.address,
            lat=self.lat,
            lng=self.lng,
            description=self.description,
            duration=self.duration,
            category=self.category,
            start_time=self.start_time,
            transport_to_next=(
                TransportLeg(**self.transport_to_next.model_dump()) if self.transport_to_next else None
            ),
            kids_rating=self.kids_rating,
        )


class POIPayload(PlacePayload):
    priority: str = "medium"
    is_must_visit: bool = False

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> str:
        value = str(v).strip().lower() if v else "medium"
        return value if value in ("high", "medium", "low") else "medium"

    @field_validator("is_must_visit", mode="before")
    @classmethod
    def _must(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1")
        return bool(v)

    def to_candidate(self, city: str) -> POICandidate:
        return POICandidate(
            name=self.name,
            address=self.address,
            lat=self.lat,
            lng=self.lng,
            description=self.description,
            duration=self.duration,
            category=self.category,
            priority=self.priority,
            is_must_visit=self.is_must_visit,
            city=city,
            kids_rating=self.kids_rating,
        )


class DistributedDayPayload(WireModel):
    day_number: Optional[int] = None
    places: List[Any] = Field(default_factory=list)

    @field_validator("places", mode="before")
    @classmethod
    def _places(cls, v: Any) -> Any:
        return [] if v is None else v


class DistributionPayload(WireModel):
    days: List[DistributedDayPayload] = Field(min_length=1)


class DayPlacesPayload(WireModel):
    places: List[Any]


def valid_entries(items: List[Any], model: type, *, context: str) -> List[Any]:
    """Validate list entries one by one, dropping the ones that do not fit."""
    good = []
    dropped = 0
    for item in items:
        try:
            good.append(model.model_validate(item))
        except PydanticValidationError:
            dropped += 1
    if dropped:
        logger.warning(json.dumps({
            "component": "schemas",
            "fn": "valid_entries",
            "context": context,
            "kept": len(good),
            "dropped": dropped,
        }))
    return good

"""Request bodies and stream events for the itinerary service."""

import datetime as dt
import json
from typing import List, Literal, Optional

from pydantic import Field

from trip_engine.models import DayItinerary, DuplicateGroup, Place, WireModel


class StreamRequest(WireModel):
    smart_regeneration: bool = False
    existing_days: List[DayItinerary] = Field(default_factory=list)
    use_two_phase: bool = True
    visited_places: List[str] = Field(default_factory=list)
    # Overrides the wall clock when planning what to regenerate.
    current_time: Optional[dt.datetime] = None


Action = Literal["generate-all", "regenerate-day", "optimize-day", "regenerate-place"]


class ActionRequest(WireModel):
    action: str
    day_number: Optional[int] = None
    places: Optional[List[Place]] = None
    place_index: Optional[int] = None
    avoid_places: List[str] = Field(default_factory=list)
    current_time: Optional[dt.datetime] = None


class ProgressInfo(WireModel):
    current: int
    total: int


class Summary(WireModel):
    ai_generated_count: int = 0
    fallback_count: int = 0
    duplicates: List[DuplicateGroup] = Field(default_factory=list)
    preserved_count: int = 0
    deadline_exceeded: bool = False


class StreamEvent(WireModel):
    type: str

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_wire(), ensure_ascii=False)}\n\n"


class ProgressEvent(StreamEvent):
    type: Literal["progress"] = "progress"
    message: str
    phase: str
    progress: ProgressInfo


class DayEvent(StreamEvent):
    type: Literal["day"] = "day"
    day: DayItinerary
    progress: ProgressInfo
    preserved: Optional[bool] = None


class CompleteEvent(StreamEvent):
    type: Literal["complete"] = "complete"
    summary: Summary


class ErrorEvent(StreamEvent):
    type: Literal["error"] = "error"
    error: str

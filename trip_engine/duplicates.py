"""Find places repeated across days and replace the later copies."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Sequence, Tuple

from .errors import DuplicateResolutionFailure, GenerationError
from .models import DayItinerary, DuplicateGroup, Place, name_key

logger = logging.getLogger(__name__)

RegeneratePlace = Callable[[DayItinerary, int, Sequence[str]], Awaitable[Place]]


def _occurrences(days: Sequence[DayItinerary]) -> Dict[str, List[Tuple[int, int, str]]]:
    """Lower-cased non-exempt name -> [(day_number, index, spelling)] in trip order."""
    found: Dict[str, List[Tuple[int, int, str]]] = {}
    for day in sorted(days, key=lambda d: d.day_number):
        for idx, place in enumerate(day.places):
            if place.is_exempt:
                continue
            found.setdefault(name_key(place.name), []).append((day.day_number, idx, place.name))
    return found


def find_duplicates(days: Sequence[DayItinerary]) -> List[DuplicateGroup]:
    groups = []
    for hits in _occurrences(days).values():
        if len(hits) > 1:
            groups.append(DuplicateGroup(location=hits[0][2], days=sorted({d for d, _, _ in hits})))
    return groups


def all_place_names(days: Sequence[DayItinerary]) -> List[str]:
    return [name for day in days for name in day.place_names()]


@dataclass
class ResolutionReport:
    replacements: List[Tuple[int, str, str]] = field(default_factory=list)
    failures: List[DuplicateResolutionFailure] = field(default_factory=list)
    remaining: List[DuplicateGroup] = field(default_factory=list)


class DuplicateResolver:
    def __init__(self, regenerate_place: RegeneratePlace, max_passes: int = 3) -> None:
        self.regenerate_place = regenerate_place
        self.max_passes = max(1, max_passes)

    async def resolve(self, days: List[DayItinerary], *, replace_from_day: int = 1) -> ResolutionReport:
        """Replace every later copy of a repeated place, in place.

        The earliest occurrence keeps the place.  Copies in days before
        ``replace_from_day`` are never touched, which lets a streaming caller
        resolve without changing days it already sent.
        """
        report = ResolutionReport()
        by_number = {day.day_number: day for day in days}

        for pass_no in range(1, self.max_passes + 1):
            targets = []
            for hits in _occurrences(days).values():
                for day_number, idx, spelling in hits[1:]:
                    if day_number >= replace_from_day:
                        targets.append((day_number, idx, spelling, hits[0][0]))
            if not targets:
                break
            logger.info(json.dumps({
                "component": "duplicates",
                "fn": "resolve",
                "pass": pass_no,
                "duplicates": [{"location": s, "day": d, "kept_on": k} for d, _, s, k in targets],
            }))

            touched = set()
            for day_number, idx, spelling, _ in targets:
                day = by_number[day_number]
                avoid = all_place_names(days)
                try:
                    place = await self.regenerate_place(day, idx, avoid)
                except GenerationError as e:
                    self._fail(report, spelling, day_number, str(e))
                    continue
                if not place.is_exempt and name_key(place.name) in {name_key(n) for n in avoid}:
                    self._fail(report, spelling, day_number, f"replacement '{place.name}' is also a duplicate")
                    continue
                day.places[idx] = place
                touched.add(day_number)
                report.replacements.append((day_number, spelling, place.name))
                logger.info(json.dumps({
                    "component": "duplicates",
                    "fn": "replace",
                    "day": day_number,
                    "before": spelling,
                    "after": place.name,
                }))
            # Target indices hold until the pass ends.
            for day_number in touched:
                by_number[day_number].sort_places()

        report.remaining = find_duplicates(days)
        if report.remaining:
            logger.warning(json.dumps({
                "component": "duplicates",
                "fn": "resolve",
                "remaining": [g.to_wire() for g in report.remaining],
            }))
        return report

    @staticmethod
    def _fail(report: ResolutionReport, location: str, day_number: int, reason: str) -> None:
        failure = DuplicateResolutionFailure(location, day_number, reason)
        report.failures.append(failure)
        logger.warning(json.dumps({
            "component": "duplicates",
            "fn": "replace",
            "day": day_number,
            "location": location,
            "ok": False,
            "reason": reason,
        }))

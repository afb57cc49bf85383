"""Drive a full itinerary request and turn it into a stream of events.

Order of work: plan the scope, send preserved days, try the two-phase path
(master POI list, then per-city distribution), and fall back to generating
one day at a time.  Every stream ends with exactly one ``complete`` or
``error`` event.
"""

import asyncio
import dataclasses
import datetime as dt
import json
import logging
import time
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

from trip_engine.day_generator import DayGenerator
from trip_engine.distributor import DayDistributor
from trip_engine.duplicates import DuplicateResolver, find_duplicates
from trip_engine.errors import DeadlineExceededError, GenerationError, TripEngineError
from trip_engine.fallback import build_fallback_day, is_fallback_day
from trip_engine.gateway import TextGenerator
from trip_engine.master_pois import MasterPOIGenerator
from trip_engine.models import DayItinerary, Place, RegenerationScope, Trip
from trip_engine.scope import is_on_trip, past_days_place_names, plan_regeneration_scope
from trip_engine.timeutils import later_of, parse_hhmm
from trip_engine.trip_config import DistributionContext, TripDetails, build_day_contexts

from .schemas import (
    CompleteEvent,
    DayEvent,
    ErrorEvent,
    ProgressEvent,
    ProgressInfo,
    StreamEvent,
    StreamRequest,
    Summary,
)

logger = logging.getLogger(__name__)


def _log(fn: str, **fields) -> None:
    log_data = {"ts": datetime.now(timezone.utc).isoformat(), "component": "orchestrator", "fn": fn}
    log_data.update(fields)
    logger.info(json.dumps(log_data, ensure_ascii=False))


class DeadlineGateway:
    """Caps every call's timeout by what is left of the request budget."""

    def __init__(self, inner: TextGenerator, deadline_sec: float, margin_sec: float,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.inner = inner
        self.margin_sec = margin_sec
        self._clock = clock
        self._deadline = clock() + deadline_sec
        self.exceeded = False

    def remaining(self) -> float:
        return self._deadline - self._clock()

    async def generate(self, prompt: str, *, timeout: Optional[float] = None,
                       temperature: Optional[float] = None) -> str:
        budget = self.remaining() - self.margin_sec
        if budget <= 0:
            if not self.exceeded:
                logger.warning(json.dumps({"component": "orchestrator", "fn": "deadline", "remaining_sec":
                                           f"{self.remaining():.2f}"}))
            self.exceeded = True
            raise DeadlineExceededError("request deadline reached; no further AI calls")
        limit = budget if timeout is None else min(timeout, budget)
        return await self.inner.generate(prompt, timeout=limit, temperature=temperature)


@dataclasses.dataclass
class _Run:
    contexts: List[DistributionContext]
    scope: RegenerationScope
    exclusions: List[str]
    preserved: Dict[int, DayItinerary] = dataclasses.field(default_factory=dict)
    generated: Dict[int, DayItinerary] = dataclasses.field(default_factory=dict)
    retained: List[Place] = dataclasses.field(default_factory=list)
    sent: int = 0

    @property
    def total(self) -> int:
        return len(self.contexts)

    def known_days(self) -> List[DayItinerary]:
        days = list(self.preserved.values()) + list(self.generated.values())
        return sorted(days, key=lambda d: d.day_number)

    def progress(self) -> ProgressInfo:
        return ProgressInfo(current=self.sent, total=self.total)


class StreamOrchestrator:
    def __init__(
        self,
        gateway: TextGenerator,
        trip: TripDetails,
        *,
        deadline_sec: float = 300.0,
        margin_sec: float = 5.0,
        phase2_concurrency: int = 2,
        legacy_concurrency: int = 1,
        duplicate_max_passes: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.trip = trip
        self.deadline_sec = deadline_sec
        self.margin_sec = margin_sec
        self.phase2_concurrency = phase2_concurrency
        self.legacy_concurrency = max(1, legacy_concurrency)
        self.duplicate_max_passes = duplicate_max_passes
        self.clock = clock

    async def events(self, request: StreamRequest, now: Optional[dt.datetime] = None) -> AsyncIterator[StreamEvent]:
        gateway = DeadlineGateway(self.gateway, self.deadline_sec, self.margin_sec, clock=self.clock)
        try:
            async for event in self._run(request, now, gateway):
                yield event
        except Exception as e:
            logger.exception(json.dumps({"component": "orchestrator", "fn": "events", "ok": False,
                                         "error": str(e)}))
            yield ErrorEvent(error=str(e) or e.__class__.__name__)

    async def collect(self, request: StreamRequest,
                      now: Optional[dt.datetime] = None) -> Tuple[List[DayItinerary], Summary]:
        days: Dict[int, DayItinerary] = {}
        async with aclosing(self.events(request, now)) as stream:
            async for event in stream:
                if isinstance(event, DayEvent):
                    days[event.day.day_number] = event.day
                elif isinstance(event, CompleteEvent):
                    return [days[n] for n in sorted(days)], event.summary
                elif isinstance(event, ErrorEvent):
                    raise TripEngineError(event.error)
        raise TripEngineError("stream ended without a terminal event")

    def _plan(self, request: StreamRequest, now: Optional[dt.datetime]) -> _Run:
        contexts = build_day_contexts(self.trip)
        total = len(contexts)
        if request.smart_regeneration:
            current = request.current_time or now or datetime.now(timezone.utc)
            scope = plan_regeneration_scope(current, self.trip)
            _log("scope", now=current.isoformat(), on_trip=is_on_trip(current, self.trip), reason=scope.reason)
        else:
            scope = RegenerationScope(start_day_number=1, end_day_number=total, reason="Full trip generation")

        exclusions = [poi.name for poi in self.trip.excluded] + list(request.visited_places)
        run = _Run(contexts=contexts, scope=scope, exclusions=exclusions)
        if request.smart_regeneration:
            existing = {d.day_number: d for d in request.existing_days}
            for number in range(1, scope.start_day_number):
                if number in existing:
                    run.preserved[number] = existing[number]
            run.exclusions.extend(past_days_place_names(list(run.preserved.values()), scope))
            cutoff = scope.start_time
            first = existing.get(scope.start_day_number)
            if cutoff and first is not None:
                run.retained = [
                    p for p in first.places
                    if p.start_time and parse_hhmm(p.start_time) < parse_hhmm(cutoff)
                ]
        return run

    async def _run(self, request: StreamRequest, now: Optional[dt.datetime],
                   gateway: DeadlineGateway) -> AsyncIterator[StreamEvent]:
        started = time.monotonic()
        run = self._plan(request, now)
        pending = [c for c in run.contexts if c.day_number not in run.preserved]
        _log("plan", scope=run.scope.to_wire(), preserved=sorted(run.preserved), pending=len(pending))
        yield ProgressEvent(message=run.scope.describe(run.total), phase="scope", progress=run.progress())

        for number in sorted(run.preserved):
            run.sent += 1
            yield DayEvent(day=run.preserved[number], progress=run.progress(), preserved=True)

        if not request.smart_regeneration and request.use_two_phase:
            try:
                async for event in self._two_phase(run, pending, gateway):
                    yield event
            except GenerationError as e:
                _log("two_phase", ok=False, error=str(e), emitted=sorted(run.generated))
                yield ProgressEvent(message="Falling back to day-by-day generation", phase="legacy",
                                    progress=run.progress())

        remaining = [c for c in pending if c.day_number not in run.generated]
        if remaining:
            async for event in self._legacy(run, remaining, gateway):
                yield event

        days = run.known_days()
        Trip(
            travelers=self.trip.travelers,
            days=days,
            start_date=self.trip.start_date.isoformat(),
            end_date=self.trip.end_date.isoformat(),
        ).validate_days()
        generated = list(run.generated.values())
        fallback_count = sum(1 for d in generated if is_fallback_day(d))
        summary = Summary(
            ai_generated_count=len(generated) - fallback_count,
            fallback_count=fallback_count,
            duplicates=find_duplicates(days),
            preserved_count=len(run.preserved),
            deadline_exceeded=gateway.exceeded,
        )
        _log("complete", latency_ms=f"{(time.monotonic() - started) * 1000:.2f}", **summary.to_wire())
        yield CompleteEvent(summary=summary)

    async def _two_phase(self, run: _Run, pending: Sequence[DistributionContext],
                         gateway: DeadlineGateway) -> AsyncIterator[StreamEvent]:
        yield ProgressEvent(message="Generating master list of places", phase="phase1", progress=run.progress())
        pool = await MasterPOIGenerator(gateway, self.trip).generate(run.exclusions)

        yield ProgressEvent(message="Distributing places across days", phase="phase2", progress=run.progress())
        distributor = DayDistributor(gateway, self.trip, concurrency=self.phase2_concurrency)
        async with aclosing(distributor.distribute(pool, pending, run.exclusions)) as cities:
            async for result in cities:
                for day in result.days:
                    run.generated[day.day_number] = day
                    run.sent += 1
                    yield DayEvent(day=day, progress=run.progress())

        leftovers = find_duplicates(run.known_days())
        if leftovers:
            _log("two_phase_verify", duplicates=[g.to_wire() for g in leftovers])

    async def _legacy(self, run: _Run, remaining: Sequence[DistributionContext],
                      gateway: DeadlineGateway) -> AsyncIterator[StreamEvent]:
        generator = DayGenerator(gateway, self.trip)
        resolver = DuplicateResolver(generator.regenerate_place, max_passes=self.duplicate_max_passes)
        known_names = list(run.exclusions)
        for day in run.generated.values():
            known_names.extend(day.place_names())
        semaphore = asyncio.Semaphore(self.legacy_concurrency)

        async def build(ctx: DistributionContext) -> DayItinerary:
            async with semaphore:
                avoid = list(known_names)
                partial = ctx.day_number == run.scope.start_day_number and run.scope.start_time
                not_before = run.scope.start_time if partial else None
                retained = run.retained if partial else []
                try:
                    day = await generator.generate_day(ctx, avoid, not_before=not_before, retained=retained)
                except GenerationError as e:
                    _log("legacy_day", day=ctx.day_number, ok=False, error=str(e))
                    day = self._fallback_day(ctx, avoid, not_before, retained)
                known_names.extend(day.place_names())
                return day

        tasks = [asyncio.create_task(build(ctx)) for ctx in remaining]
        try:
            for task in tasks:
                day = await task
                days = run.known_days() + [day]
                report = await resolver.resolve(days, replace_from_day=day.day_number)
                if report.replacements:
                    known_names.extend(day.place_names())
                run.generated[day.day_number] = day
                run.sent += 1
                yield DayEvent(day=day, progress=run.progress())
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    @staticmethod
    def _fallback_day(ctx: DistributionContext, avoid: Sequence[str], not_before: Optional[str],
                      retained: Sequence[Place]) -> DayItinerary:
        if not_before:
            ctx = dataclasses.replace(ctx, available_start_time=later_of(ctx.available_start_time, not_before))
        day = build_fallback_day(ctx, list(avoid) + [p.name for p in retained])
        if retained:
            day.places = list(retained) + day.places
            day.finalize()
        return day

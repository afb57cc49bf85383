"""Deterministic itineraries used when a day cannot be generated."""

from __future__ import annotations

import json
import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

from .models import DayItinerary, Place, TransportLeg, name_key
from .preferences import blocked_interval, matches_any, merge_fixed_schedules, overlaps_fixed
from .timeutils import format_minutes, parse_hhmm
from .trip_config import DistributionContext

logger = logging.getLogger(__name__)

TRAVEL_MINUTES = 20
SHORT_DAY_PLACES = 2
FULL_DAY_PLACES = 4
MIN_DEPARTURE_WINDOW = 90
EARLIEST_START = 6 * 60


class CatalogueEntry(NamedTuple):
    name: str
    address: str
    lat: Optional[float]
    lng: Optional[float]
    description: str
    duration: int
    category: str
    kids_rating: Optional[str] = None


LISBON = [
    CatalogueEntry("Praça do Comércio", "Praça do Comércio, 1100-148 Lisboa, Portugal", 38.7075, -9.1364,
                   "Grand riverside square at the heart of Baixa.", 60, "landmark",
                   "Lots of space to run and the yellow trams rolling past."),
    CatalogueEntry("Confeitaria Nacional", "Praça da Figueira 18B, 1100-241 Lisboa, Portugal", 38.7136, -9.1381,
                   "Historic pastry shop in Praça da Figueira.", 45, "restaurant",
                   "Custard tarts and hot chocolate."),
    CatalogueEntry("Jardim da Estrela", "Praça da Estrela, 1200-667 Lisboa, Portugal", 38.7139, -9.1597,
                   "Shady park with a playground, duck pond and café.", 90, "park",
                   "Big playground and ducks to feed."),
    CatalogueEntry("Museu Nacional dos Coches", "Av. da Índia 136, 1300-300 Lisboa, Portugal", 38.6971, -9.1985,
                   "Collection of royal carriages in Belém.", 75, "museum",
                   "Golden carriages straight out of a fairy tale."),
    CatalogueEntry("Cervejaria Ramiro", "Av. Almirante Reis 1, 1150-007 Lisboa, Portugal", 38.7207, -9.1357,
                   "Classic seafood restaurant, lively and casual.", 90, "restaurant"),
    CatalogueEntry("Miradouro de Santa Luzia", "Largo Santa Luzia, 1100-487 Lisboa, Portugal", 38.7118, -9.1302,
                   "Tiled viewpoint over Alfama and the river.", 30, "viewpoint",
                   "Spot the ships on the Tagus."),
    CatalogueEntry("Pavilhão do Conhecimento", "Largo José Mariano Gago 1, 1990-073 Lisboa, Portugal", 38.7627, -9.0953,
                   "Hands-on science centre in Parque das Nações.", 150, "museum",
                   "Experiments kids can touch and build."),
    CatalogueEntry("LX Factory", "R. Rodrigues de Faria 103, 1300-501 Lisboa, Portugal", 38.7038, -9.1784,
                   "Converted industrial complex with shops and cafés.", 90, "neighborhood"),
]

LONDON = [
    CatalogueEntry("St. Katharine Docks", "50 St Katharine's Way, London E1W 1LA, United Kingdom", 51.5067, -0.0714,
                   "Marina next to Tower Bridge with waterside cafés.", 60, "neighborhood",
                   "Boats to spot and Tower Bridge views."),
    CatalogueEntry("Dishoom Covent Garden", "12 Upper St Martin's Ln, London WC2H 9FB, United Kingdom", 51.5125,
                   -0.1271, "Bombay-style café, family friendly.", 75, "restaurant"),
    CatalogueEntry("Hyde Park & Diana Memorial Playground", "Kensington Gardens, London W2 2UH, United Kingdom",
                   51.5075, -0.1877, "Royal park with a pirate-ship playground.", 120, "park",
                   "A giant wooden pirate ship to climb."),
    CatalogueEntry("London Transport Museum", "Covent Garden Piazza, London WC2E 7BB, United Kingdom", 51.5119,
                   -0.1215, "Historic buses and trains you can climb aboard.", 90, "museum",
                   "Driving seats in real buses and tube trains."),
    CatalogueEntry("Southbank Centre Food Market", "Belvedere Rd, London SE1 8XX, United Kingdom", 51.5066, -0.1166,
                   "Street food stalls by the river.", 60, "restaurant"),
    CatalogueEntry("London Eye", "Riverside Building, County Hall, London SE1 7PB, United Kingdom", 51.5033, -0.1196,
                   "Giant observation wheel on the South Bank.", 60, "landmark",
                   "Seeing all of London from the top."),
    CatalogueEntry("Leon Blackfriars", "86 Fleet St, London EC4Y 1DH, United Kingdom", 51.5141, -0.1061,
                   "Quick, healthy breakfast near the hotel.", 45, "restaurant"),
    CatalogueEntry("Horniman Museum and Gardens", "100 London Rd, London SE23 3PQ, United Kingdom", 51.4410, -0.0610,
                   "Aquarium, animal walk and musical instruments gallery.", 150, "museum",
                   "The aquarium and the giant walrus."),
]

CATALOGUES: Dict[str, List[CatalogueEntry]] = {"Lisbon": LISBON, "London": LONDON}


def generic_catalogue(city: str) -> List[CatalogueEntry]:
    return [
        CatalogueEntry(f"{city} Old Town Walk", f"Old Town, {city}", None, None,
                       f"Self-guided stroll through the historic centre of {city}.", 90, "neighborhood"),
        CatalogueEntry(f"Lunch in Central {city}", f"City centre, {city}", None, None,
                       "Family-friendly local restaurant.", 75, "restaurant"),
        CatalogueEntry(f"{city} City Museum", f"{city}", None, None,
                       f"Main history museum of {city}.", 120, "museum"),
        CatalogueEntry(f"{city} Main Park", f"{city}", None, None,
                       "Green space with a playground.", 90, "park"),
        CatalogueEntry(f"Breakfast Café in {city}", f"{city}", None, None,
                       "Quick breakfast near the hotel.", 45, "restaurant"),
        CatalogueEntry(f"Dinner near the Hotel in {city}", f"{city}", None, None,
                       "Relaxed dinner close to the hotel.", 90, "restaurant"),
    ]


def catalogue_for(city: str) -> List[CatalogueEntry]:
    return CATALOGUES.get(city) or generic_catalogue(city)


def _window(ctx: DistributionContext) -> tuple:
    start = parse_hhmm(ctx.available_start_time)
    end = parse_hhmm(ctx.available_end_time)
    if ctx.is_departure_day and end - start < MIN_DEPARTURE_WINDOW:
        start = max(EARLIEST_START, end - MIN_DEPARTURE_WINDOW)
    return start, end


def build_fallback_day(ctx: DistributionContext, avoid_names: Sequence[str] = ()) -> DayItinerary:
    """Lay out catalogue places inside the day's window around any bookings."""
    catalogue = catalogue_for(ctx.city)
    target = SHORT_DAY_PLACES if ctx.is_arrival_day or ctx.is_departure_day else FULL_DAY_PLACES
    offset = ((ctx.day_in_city - 1) * FULL_DAY_PLACES) % len(catalogue)
    candidates = [e for e in catalogue[offset:] + catalogue[:offset] if not matches_any(e.name, avoid_names)]

    cursor, end = _window(ctx)
    places: List[Place] = []
    for entry in candidates:
        if len(places) >= target:
            break
        start = cursor
        for schedule in ctx.fixed_schedules:
            b_start, b_end = (parse_hhmm(t) for t in blocked_interval(schedule))
            if start < b_end and b_start < start + entry.duration:
                start = b_end + TRAVEL_MINUTES
        if start + entry.duration > end or overlaps_fixed(format_minutes(start), entry.duration, ctx.fixed_schedules):
            continue
        if places:
            places[-1].transport_to_next = TransportLeg(mode="walk", duration=TRAVEL_MINUTES)
        places.append(Place(
            id=f"{ctx.day_number}-{len(places)}",
            name=entry.name,
            address=entry.address,
            lat=entry.lat,
            lng=entry.lng,
            description=entry.description,
            duration=entry.duration,
            category=entry.category,
            start_time=format_minutes(start),
            kids_rating=entry.kids_rating,
        ))
        cursor = start + entry.duration + TRAVEL_MINUTES

    day = DayItinerary(
        date=ctx.date,
        day_number=ctx.day_number,
        city=ctx.city,
        hotel=ctx.hotel,
        places=merge_fixed_schedules(places, ctx.fixed_schedules, ctx.day_number),
        flight=ctx.flight,
        train=ctx.train,
    ).finalize()
    logger.warning(json.dumps({
        "component": "fallback",
        "fn": "build_fallback_day",
        "day": ctx.day_number,
        "city": ctx.city,
        "places": [p.name for p in day.places],
    }))
    return day


def is_fallback_day(day: DayItinerary) -> bool:
    if not day.places:
        return True
    for place in day.places:
        description = (place.description or "").lower()
        if "fallback" in description or "default" in description:
            return True
    known = {name_key(e.name) for e in catalogue_for(day.city)}
    names = [name_key(n) for n in day.place_names()]
    return bool(names) and all(n in known for n in names)

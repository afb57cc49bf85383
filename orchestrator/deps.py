from typing import Optional

from fastapi import Header, HTTPException, Request, status

from trip_engine.day_generator import DayGenerator
from trip_engine.trip_config import TripDetails

from .stream import StreamOrchestrator


def get_api_key(request: Request, x_api_key: Optional[str] = Header(default=None)) -> Optional[str]:
    expected_api_key = request.app.state.api_key
    if expected_api_key is None:
        return None
    if x_api_key != expected_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{name} not initialized",
        )
    return value


def get_orchestrator(request: Request) -> StreamOrchestrator:
    return _state(request, "orchestrator")


def get_day_generator(request: Request) -> DayGenerator:
    return _state(request, "day_generator")


def get_trip(request: Request) -> TripDetails:
    return _state(request, "trip")

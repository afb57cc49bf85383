import pytest

from scripted import (
    DAY,
    DISTRIBUTE,
    MASTER,
    PLACE,
    ScriptedGateway,
    day_responder,
    distribution_response,
    master_response,
    place_responder,
)
from trip_engine.trip_config import TripDetails, default_trip


@pytest.fixture
def trip() -> TripDetails:
    return default_trip()


@pytest.fixture
def plain_trip() -> TripDetails:
    """The default trip without configured must-visits."""
    return default_trip().model_copy(update={"must_visit": []})


@pytest.fixture
def happy_gateway(trip) -> ScriptedGateway:
    return ScriptedGateway({
        MASTER: master_response(trip),
        DISTRIBUTE: distribution_response,
        DAY: day_responder(),
        PLACE: place_responder(),
    })

import json
import logging
from contextlib import aclosing, asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
import uvicorn

from trip_engine.day_generator import DayGenerator
from trip_engine.gateway import AIGateway, TextGenerator
from trip_engine.trip_config import TripDetails, load_trip_details

from .actions import ActionError, run_action
from .config import CONFIG, _Config
from .deps import get_api_key, get_day_generator, get_orchestrator, get_trip
from .schemas import ActionRequest, StreamRequest
from .stream import StreamOrchestrator


# --- Logging Configuration ---
logging.basicConfig(
    level=CONFIG.log_level,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()  # Ensure logs go to stdout/stderr
    ]
)
# --------------------------

logger = logging.getLogger(__name__)


def create_app(
    config: _Config = CONFIG,
    gateway: Optional[TextGenerator] = None,
    trip: Optional[TripDetails] = None,
) -> FastAPI:
    limiter = Limiter(key_func=get_remote_address, default_limits=[config.rate_limit])

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        gateway_config = config.gateway_config()
        app.state.api_key = config.api_key
        app.state.gateway_config = gateway_config
        app.state.trip = trip or load_trip_details(config.trip_config_path)
        app.state.gateway = gateway or AIGateway(gateway_config)
        app.state.orchestrator = StreamOrchestrator(
            app.state.gateway,
            app.state.trip,
            deadline_sec=config.request_deadline_sec,
            margin_sec=config.deadline_margin_sec,
            phase2_concurrency=config.phase2_concurrency,
            legacy_concurrency=config.legacy_concurrency,
            duplicate_max_passes=config.duplicate_max_passes,
        )
        app.state.day_generator = DayGenerator(app.state.gateway, app.state.trip)
        logger.info(json.dumps({
            "component": "service",
            "fn": "startup",
            "provider": gateway_config.provider,
            "model": gateway_config.model,
            "cities": app.state.trip.cities,
            "days": app.state.trip.total_days,
        }))
        yield

    app = FastAPI(title="Itinerary Orchestrator", lifespan=lifespan)
    app.state.limiter = limiter
    app.state.api_key = config.api_key
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(_: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body", "details": str(exc.errors())},
        )

    @app.get("/", dependencies=[Depends(get_api_key)])
    async def root(request: Request):
        gateway_config = request.app.state.gateway_config
        return {"status": "ok", "provider": gateway_config.provider, "model": gateway_config.model}

    @app.post("/generate-itinerary-stream", dependencies=[Depends(get_api_key)])
    async def generate_itinerary_stream(
        body: StreamRequest,
        orchestrator: StreamOrchestrator = Depends(get_orchestrator),
    ):
        async def event_stream():
            async with aclosing(orchestrator.events(body)) as events:
                async for event in events:
                    yield event.to_sse()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.post("/generate-itinerary", dependencies=[Depends(get_api_key)])
    async def generate_itinerary(
        body: ActionRequest,
        orchestrator: StreamOrchestrator = Depends(get_orchestrator),
        generator: DayGenerator = Depends(get_day_generator),
        trip: TripDetails = Depends(get_trip),
    ):
        try:
            return await run_action(body, orchestrator=orchestrator, generator=generator, trip=trip)
        except ActionError as e:
            return JSONResponse(status_code=e.status_code, content={"error": e.message})
        except Exception as e:
            logger.exception(json.dumps({"component": "actions", "fn": body.action, "ok": False, "error": str(e)}))
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to process request", "details": str(e)},
            )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=CONFIG.port)

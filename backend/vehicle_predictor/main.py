"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vehicle_predictor.api import direction, vehicles
from vehicle_predictor.config import settings
from vehicle_predictor.core.enhancer import PredictionEngine

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    engine = PredictionEngine(settings)

    # Wire up API modules
    vehicles.engine = engine
    direction.engine = engine

    logger.info(
        "Vehicle predictor started - avg speed %.0f km/h, dwell %.0fs, off-route %.0fm",
        settings.average_speed_kmh, settings.dwell_time_s, settings.off_route_threshold_m,
    )

    yield

    vehicles.engine = None
    direction.engine = None
    logger.info("Vehicle predictor shut down")


app = FastAPI(
    title="Transit Vehicle Predictor",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(vehicles.router)
app.include_router(direction.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}

"""FastAPI application entry point for the Station Telemetry Service.

This service owns the ingestion side of the landslide monitoring network:
it pulls each station's logger tables from the FTPS file store, reduces them
to soil saturation and trailing precipitation, and writes the results back to
the station registry in consistent batches.

The heartbeat runs as a background task, refreshing every station's metrics
on a fixed interval.  The map and CMS read the registry; a station whose
last_updated stops advancing is shown as stale.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from station_telemetry.api.routes import router
from station_telemetry.core.config import settings
from station_telemetry.core.errors import register_error_handlers
from station_telemetry.core.middleware import RequestLoggingMiddleware
from station_telemetry.services.batch_updater import BatchUpdater
from station_telemetry.services.heartbeat import HeartbeatScheduler
from station_telemetry.services.ingest import StationIngestor
from station_telemetry.services.station_registry import StationRegistry

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = StationRegistry()
    ingestor = StationIngestor()
    updater = BatchUpdater(registry)
    scheduler = HeartbeatScheduler(registry, ingestor, updater)

    app.state.registry = registry
    app.state.ingestor = ingestor
    app.state.updater = updater
    app.state.scheduler = scheduler

    if settings.heartbeat_enabled:
        logger.info("Starting heartbeat background task")
        scheduler.start()
    yield
    await scheduler.stop()
    logger.info("Heartbeat shut down")


app = FastAPI(
    title="Station Telemetry",
    description=(
        "Ingestion and aggregation pipeline for the landslide monitoring station "
        "network. Converts raw logger tables into soil saturation and "
        "precipitation metrics and keeps the station registry in sync."
    ),
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

register_error_handlers(app)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1", tags=["stations"])


@app.get("/health", tags=["ops"])
async def health_check() -> dict:
    return {"status": "ok", "service": "station-telemetry"}

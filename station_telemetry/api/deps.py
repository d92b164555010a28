"""FastAPI dependencies resolving the pipeline components built at startup."""

from fastapi import Request

from station_telemetry.services.batch_updater import BatchUpdater
from station_telemetry.services.heartbeat import HeartbeatScheduler
from station_telemetry.services.ingest import StationIngestor
from station_telemetry.services.station_registry import StationRegistry


def get_registry(request: Request) -> StationRegistry:
    return request.app.state.registry


def get_ingestor(request: Request) -> StationIngestor:
    return request.app.state.ingestor


def get_updater(request: Request) -> BatchUpdater:
    return request.app.state.updater


def get_scheduler(request: Request) -> HeartbeatScheduler:
    return request.app.state.scheduler

"""REST API routes for station telemetry ingestion."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from station_telemetry.api.deps import get_ingestor, get_registry, get_scheduler, get_updater
from station_telemetry.api.schemas import (
    BatchUpdateRequest,
    BatchUpdateResponse,
    CycleSummary,
    ErrorResponse,
    HeartbeatRunResponse,
    HeartbeatStatusResponse,
    StationFileData,
    StationProcessResponse,
    StationView,
    WcHistoryPoint,
    WcHistoryResponse,
)
from station_telemetry.core.errors import TelemetryError
from station_telemetry.services.batch_updater import BatchUpdater
from station_telemetry.services.heartbeat import CycleReport, HeartbeatScheduler
from station_telemetry.services.ingest import StationIngestor
from station_telemetry.services.station_registry import (
    BatchUpdateItem,
    StationRegistry,
    StationSnapshot,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Helpers ───────────────────────────────────────────────────────────────────


def _summarize(report: CycleReport) -> CycleSummary:
    return CycleSummary(
        started_at=report.started_at,
        finished_at=report.finished_at,
        stations_attempted=report.stations_attempted,
        updated=report.applied,
        failures=report.failures,
        batch_error=report.batch_error,
    )


# ── Batch update ──────────────────────────────────────────────────────────────


@router.post(
    "/stations/batch-update",
    response_model=BatchUpdateResponse,
    responses={500: {"model": ErrorResponse, "description": "Batch rolled back"}},
    summary="Apply computed metrics to many stations at once",
    description=(
        "Writes soil saturation and precipitation for every listed station as a "
        "single batch and stamps last_updated with the time of the write. In "
        "atomic mode a failure rolls back the whole batch."
    ),
)
async def batch_update_stations(
    body: BatchUpdateRequest,
    updater: BatchUpdater = Depends(get_updater),
) -> BatchUpdateResponse:
    if not body.stations:
        return BatchUpdateResponse(message="No stations to update", updated_count=0)

    items = [
        BatchUpdateItem(
            station_id=entry.station_id,
            soil_saturation=entry.soil_saturation,
            precipitation=entry.precipitation,
        )
        for entry in body.stations
    ]
    updated = len(await updater.apply(items))

    return BatchUpdateResponse(message=f"{updated} stations updated", updated_count=updated)


# ── Station files ─────────────────────────────────────────────────────────────


@router.get(
    "/stations/files/data",
    response_model=list[StationFileData],
    summary="Latest parsed rows for every station",
)
async def get_all_station_files_data(
    registry: StationRegistry = Depends(get_registry),
    ingestor: StationIngestor = Depends(get_ingestor),
) -> list[StationFileData]:
    """Per-station failures are reported inline instead of failing the request."""
    stations = await registry.list_stations()

    async def _one(station: StationSnapshot) -> StationFileData:
        if not station.ftp_file_path:
            return StationFileData(
                station_id=station.station_id,
                error="No ftp_file_path defined for this station",
            )
        try:
            table = await ingestor.latest_table(station.ftp_file_path)
        except TelemetryError as exc:
            logger.warning("Station %s file unavailable: %s", station.station_id, exc)
            return StationFileData(
                station_id=station.station_id,
                file_path=station.ftp_file_path,
                error=str(exc),
            )
        return StationFileData(
            station_id=station.station_id,
            file_path=station.ftp_file_path,
            data=table.records,
        )

    return list(await asyncio.gather(*(_one(s) for s in stations)))


@router.get(
    "/stations/files/data/{station_id}",
    response_model=StationFileData,
    responses={
        404: {"model": ErrorResponse, "description": "Station or file pointer not found"},
        502: {"model": ErrorResponse, "description": "File store or parse failure"},
    },
    summary="Latest parsed rows for one station",
)
async def get_station_file_data(
    station_id: int,
    registry: StationRegistry = Depends(get_registry),
    ingestor: StationIngestor = Depends(get_ingestor),
) -> StationFileData:
    station = await registry.get_station(station_id)
    if not station.ftp_file_path:
        raise HTTPException(status_code=404, detail="No FTP file path defined for this station")

    table = await ingestor.latest_table(station.ftp_file_path)
    return StationFileData(
        station_id=station.station_id,
        file_path=station.ftp_file_path,
        data=table.records,
    )


@router.put(
    "/stations/files/data/{station_id}/update",
    response_model=StationProcessResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Station or file pointer not found"},
        422: {"model": ErrorResponse, "description": "File has no data rows"},
        500: {"model": ErrorResponse, "description": "Batch rolled back"},
        502: {"model": ErrorResponse, "description": "File store or parse failure"},
    },
    summary="Recompute and store one station's metrics",
)
async def process_station_file_and_update(
    station_id: int,
    registry: StationRegistry = Depends(get_registry),
    ingestor: StationIngestor = Depends(get_ingestor),
    updater: BatchUpdater = Depends(get_updater),
) -> StationProcessResponse:
    station = await registry.get_station(station_id)
    if not station.ftp_file_path:
        raise HTTPException(status_code=404, detail="No FTP file path defined for this station")

    item = await ingestor.build_item(station)
    if item is None:
        raise HTTPException(
            status_code=422, detail=f"No data rows in {station.ftp_file_path}"
        )

    updated = len(await updater.apply([item]))

    logger.info("Station %s processed and updated", station_id)
    return StationProcessResponse(
        message=f"Station {station_id} processed and updated",
        station_id=station_id,
        soil_saturation=item.soil_saturation,
        precipitation=item.precipitation,
        updated_count=updated,
    )


@router.get(
    "/stations/history/{station_id}/wc",
    response_model=WcHistoryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Station or history pointer not found"},
        422: {"model": ErrorResponse, "description": "History file lacks required columns"},
        502: {"model": ErrorResponse, "description": "File store or parse failure"},
    },
    summary="Daily water-content averages for one station",
)
async def get_station_wc_history(
    station_id: int,
    registry: StationRegistry = Depends(get_registry),
    ingestor: StationIngestor = Depends(get_ingestor),
) -> WcHistoryResponse:
    station = await registry.get_station(station_id)
    if not station.history_data_url:
        raise HTTPException(status_code=404, detail="No history file defined for this station")

    history = await ingestor.wc_history(station.history_data_url)

    return WcHistoryResponse(
        station_id=station.station_id,
        file_path=station.history_data_url,
        history=[WcHistoryPoint(**day.as_dict()) for day in history.days],
        precipitation_window_total=history.precipitation_window_total,
    )


# ── Heartbeat ─────────────────────────────────────────────────────────────────


@router.get(
    "/heartbeat",
    response_model=HeartbeatStatusResponse,
    tags=["heartbeat"],
    summary="Scheduler state, last cycle and the in-memory station view",
)
async def heartbeat_status(
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> HeartbeatStatusResponse:
    return HeartbeatStatusResponse(
        **scheduler.status(),
        stations=[StationView.model_validate(s) for s in scheduler.stations],
    )


@router.post(
    "/heartbeat/run",
    response_model=HeartbeatRunResponse,
    tags=["heartbeat"],
    summary="Run a heartbeat cycle now",
    description="Dropped (not queued) if a cycle is already running.",
)
async def heartbeat_run(
    scheduler: HeartbeatScheduler = Depends(get_scheduler),
) -> HeartbeatRunResponse:
    report = await scheduler.tick()
    if report is None:
        return HeartbeatRunResponse(dropped=True)
    return HeartbeatRunResponse(dropped=False, cycle=_summarize(report))

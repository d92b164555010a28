"""Heartbeat scheduler: keeps station metrics in sync with the source files.

The loop:
1. On activation, load the station list from the registry.
2. Run one cycle immediately, then one every ``heartbeat_interval_seconds``.
3. Each cycle fetches and reduces every station's latest file concurrently,
   then submits the successful results as one batch.

At most one cycle runs at a time.  A tick that arrives while a cycle is in
flight (or while the scheduler is stopping) is dropped, not queued.  A failed
station or batch is logged and retried naturally on the next tick.

Runs as an asyncio background task managed by FastAPI's lifespan.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from station_telemetry.core.config import settings
from station_telemetry.core.errors import TelemetryError
from station_telemetry.services.batch_updater import BatchError, BatchUpdater
from station_telemetry.services.ingest import StationIngestor
from station_telemetry.services.station_registry import (
    BatchUpdateItem,
    StationRegistry,
    StationSnapshot,
)

logger = logging.getLogger(__name__)


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class CycleReport:
    """What one heartbeat cycle attempted, produced and wrote."""

    started_at: datetime
    finished_at: datetime | None = None
    stations_attempted: int = 0
    items: list[BatchUpdateItem] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)
    applied: int = 0
    batch_error: str | None = None


class HeartbeatScheduler:
    def __init__(
        self,
        registry: StationRegistry,
        ingestor: StationIngestor,
        updater: BatchUpdater,
        interval_seconds: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.registry = registry
        self.ingestor = ingestor
        self.updater = updater
        self.interval = interval_seconds or settings.heartbeat_interval_seconds
        self.max_concurrency = max_concurrency or settings.heartbeat_max_concurrency

        self.state = SchedulerState.IDLE
        self.last_report: CycleReport | None = None
        self._stations: dict[int, StationSnapshot] | None = None
        self._stopping = False
        self._loop_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None

    # ── Station view ──────────────────────────────────────────────────────

    @property
    def stations(self) -> list[StationSnapshot]:
        return list((self._stations or {}).values())

    async def load_stations(self) -> None:
        stations = await self.registry.list_stations()
        self._stations = {s.station_id: s for s in stations}
        logger.info("Heartbeat loaded %d stations", len(stations))

    def _refresh_view(
        self, items: list[BatchUpdateItem], applied_ids: list[int], applied_at: datetime
    ) -> None:
        """Mirror the rows the registry actually wrote; skipped items stay as they were."""
        if self._stations is None:
            return
        written = set(applied_ids)
        for item in items:
            if item.station_id not in written:
                continue
            snapshot = self._stations.get(item.station_id)
            if snapshot is None:
                continue
            self._stations[item.station_id] = replace(
                snapshot,
                soil_saturation=item.soil_saturation,
                precipitation=item.precipitation,
                last_updated=applied_at,
            )

    # ── Cycle ─────────────────────────────────────────────────────────────

    async def tick(self) -> CycleReport | None:
        """Run one cycle unless one is already running; returns None if dropped."""
        if self._stopping or self.state is SchedulerState.RUNNING:
            logger.info("Heartbeat tick dropped (state=%s, stopping=%s)", self.state.value, self._stopping)
            return None

        self.state = SchedulerState.RUNNING
        try:
            if self._stations is None:
                await self.load_stations()
            report = await self._run_cycle()
            self.last_report = report
            return report
        except Exception:
            logger.exception("Heartbeat cycle failed unexpectedly")
            return None
        finally:
            self.state = SchedulerState.IDLE

    async def _process_station(
        self, station: StationSnapshot, semaphore: asyncio.Semaphore
    ) -> tuple[StationSnapshot, BatchUpdateItem | None, str | None]:
        async with semaphore:
            try:
                item = await self.ingestor.build_item(station)
            except TelemetryError as exc:
                logger.warning(
                    "Station %s (%s) excluded from batch: %s",
                    station.station_id, station.ftp_file_path, exc,
                )
                return station, None, str(exc)
            except Exception as exc:
                logger.exception(
                    "Unexpected error processing station %s (%s)",
                    station.station_id, station.ftp_file_path,
                )
                return station, None, str(exc)
        return station, item, None

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=datetime.now(timezone.utc))
        targets = [s for s in self.stations if s.ftp_file_path]
        report.stations_attempted = len(targets)
        logger.info("Heartbeat: checking %d stations", len(targets))

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(*(self._process_station(s, semaphore) for s in targets))

        for station, item, error in results:
            if error is not None:
                report.failures[station.station_id] = error
            elif item is not None:
                report.items.append(item)

        if report.items:
            applied_at = datetime.now(timezone.utc)
            try:
                applied_ids = await self.updater.apply(report.items, applied_at=applied_at)
            except BatchError as exc:
                report.batch_error = str(exc)
                logger.error("Heartbeat batch not applied: %s", exc)
            else:
                report.applied = len(applied_ids)
                self._refresh_view(report.items, applied_ids, applied_at)
                logger.info("Heartbeat: updated %d stations", report.applied)

        report.finished_at = datetime.now(timezone.utc)
        return report

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def _run_loop(self) -> None:
        """Tick immediately, then every ``interval`` seconds until stopped."""
        loop = asyncio.get_running_loop()
        logger.info("Heartbeat started (interval=%ss)", self.interval)

        while not self._stopping:
            started = loop.time()
            self._cycle_task = asyncio.create_task(self.tick())
            try:
                await asyncio.shield(self._cycle_task)
            except asyncio.CancelledError:
                break

            delay = max(0.0, self.interval - (loop.time() - started))
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

        logger.info("Heartbeat stopped")

    def start(self) -> None:
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._stopping = False
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """Cancel the timer and wait for an in-flight cycle to finish."""
        self._stopping = True
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._cycle_task is not None and not self._cycle_task.done():
            await self._cycle_task
        self._cycle_task = None

    def status(self) -> dict:
        report = self.last_report
        return {
            "state": self.state.value,
            "interval_seconds": self.interval,
            "stations_loaded": self._stations is not None,
            "last_cycle": None if report is None else {
                "started_at": report.started_at,
                "finished_at": report.finished_at,
                "stations_attempted": report.stations_attempted,
                "updated": report.applied,
                "failures": report.failures,
                "batch_error": report.batch_error,
            },
        }

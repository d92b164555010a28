#!/usr/bin/env python3
"""Run the station ingestion pipeline from the command line.

Usage:
    # One heartbeat cycle against the configured database and FTPS store:
    python scripts/sync_stations.py

    # Recompute one station; --dry-run prints the metrics without writing:
    python scripts/sync_stations.py --station-id 3 --dry-run

    # Print one station's daily WC history:
    python scripts/sync_stations.py --station-id 3 --history

Connection settings come from the environment / .env (FTPS_SERVER, FTPS_USER,
FTPS_PASSWORD, DATABASE_URL, ...).
"""

import argparse
import asyncio
import logging
import sys

from station_telemetry.core.config import settings
from station_telemetry.core.errors import TelemetryError
from station_telemetry.services.batch_updater import BatchUpdater
from station_telemetry.services.heartbeat import HeartbeatScheduler
from station_telemetry.services.ingest import StationIngestor
from station_telemetry.services.station_registry import BatchUpdateItem, StationRegistry


async def _show_station(station_id: int, history: bool, dry_run: bool) -> int:
    registry = StationRegistry()
    ingestor = StationIngestor()
    station = await registry.get_station(station_id)

    if history:
        if not station.history_data_url:
            print(f"Station {station_id} has no history file configured")
            return 1
        summary = await ingestor.wc_history(station.history_data_url)
        print(f"Daily WC averages for station {station_id} ({station.history_data_url}):")
        for day in summary.days:
            avgs = "  ".join(f"wc{ch}={val}" for ch, val in day.averages.items())
            print(f"  {day.day.isoformat()}  n={day.count:<4d} {avgs}")
        print(f"Rain, last {settings.rolling_window_rows} rows: {summary.precipitation_window_total:.2f} mm")
        return 0

    if not station.ftp_file_path:
        print(f"Station {station_id} has no latest-data file configured")
        return 1
    metrics = await ingestor.compute_metrics(station)
    if metrics is None:
        print(f"No data rows in {station.ftp_file_path}")
        return 1
    print(f"Station {station_id} ({station.ftp_file_path}):")
    print(f"  soil saturation: {metrics.soil_saturation:.1f}% ({metrics.channels_used} channels)")
    print(f"  precipitation:   {metrics.precipitation:.2f} mm")
    if dry_run:
        return 0

    item = BatchUpdateItem(
        station_id=station_id,
        soil_saturation=metrics.soil_saturation,
        precipitation=metrics.precipitation,
    )
    updated = len(await BatchUpdater(registry).apply([item]))
    print(f"  stored: {updated} row(s) updated")
    return 0


async def _run_cycle() -> int:
    registry = StationRegistry()
    scheduler = HeartbeatScheduler(registry, StationIngestor(), BatchUpdater(registry))
    report = await scheduler.tick()
    if report is None:
        print("Cycle did not run (see log)")
        return 1

    print(f"Stations attempted: {report.stations_attempted}")
    print(f"Stations updated:   {report.applied}")
    for station_id, error in sorted(report.failures.items()):
        print(f"  [skipped] station {station_id}: {error}")
    if report.batch_error:
        print(f"Batch failed: {report.batch_error}")
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync station metrics from the FTPS file store")
    parser.add_argument("--station-id", type=int, default=None, help="Inspect a single station")
    parser.add_argument("--dry-run", action="store_true", help="Compute only, do not write")
    parser.add_argument("--history", action="store_true", help="Print daily WC history")
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    if args.station_id is None and (args.dry_run or args.history):
        parser.error("--dry-run and --history require --station-id")

    try:
        if args.station_id is not None:
            return asyncio.run(_show_station(args.station_id, args.history, args.dry_run))
        return asyncio.run(_run_cycle())
    except TelemetryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

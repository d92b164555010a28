"""Fetch → parse → reduce for one station file.

The layout is chosen by use case, not sniffed from content: the "latest"
tables behind ``ftp_file_path`` are banked TOA5 exports, the history files
behind ``history_data_url`` are plain header-first CSV.
"""

from __future__ import annotations

import logging

from station_telemetry.core.config import settings
from station_telemetry.pipeline.aggregator import DailyHistory, summarize_history
from station_telemetry.pipeline.ftp_transport import FtpsTransport
from station_telemetry.pipeline.metrics import StationMetrics, compute_station_metrics
from station_telemetry.pipeline.table_parser import BANKED, SIMPLE, ParsedTable, parse_table
from station_telemetry.services.station_registry import BatchUpdateItem, StationSnapshot

logger = logging.getLogger(__name__)


class StationIngestor:
    def __init__(self, transport: FtpsTransport | None = None) -> None:
        self.transport = transport or FtpsTransport()

    async def latest_table(self, file_path: str) -> ParsedTable:
        lines = await self.transport.fetch_raw_async(file_path)
        return parse_table(lines, BANKED)

    async def wc_history(self, file_path: str) -> DailyHistory:
        lines = await self.transport.fetch_raw_async(file_path)
        return summarize_history(parse_table(lines, SIMPLE))

    async def compute_metrics(self, station: StationSnapshot) -> StationMetrics | None:
        """Metrics for a station with a configured latest-file pointer."""
        table = await self.latest_table(station.ftp_file_path)
        metrics = compute_station_metrics(
            table.records,
            station.thresholds,
            rain_column=settings.rain_column,
            window=settings.rolling_window_rows,
        )
        if metrics is None:
            logger.warning(
                "No data rows in %s for station %s", station.ftp_file_path, station.station_id
            )
        elif metrics.channels_used == 0:
            logger.warning(
                "Station %s: no WC channel computable (missing readings or ceilings)",
                station.station_id,
            )
        return metrics

    async def build_item(self, station: StationSnapshot) -> BatchUpdateItem | None:
        metrics = await self.compute_metrics(station)
        if metrics is None:
            return None
        return BatchUpdateItem(
            station_id=station.station_id,
            soil_saturation=metrics.soil_saturation,
            precipitation=metrics.precipitation,
        )

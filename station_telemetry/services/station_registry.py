"""Station registry access used by the ingestion pipeline.

The registry table is owned by the CMS.  The pipeline reads identity,
thresholds and file pointers, and writes only the derived metrics
(soil_saturation, precipitation, last_updated).  Thresholds are never written
from here.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from station_telemetry.core.database import async_session_factory
from station_telemetry.core.errors import TelemetryError
from station_telemetry.models.station import Station
from station_telemetry.pipeline.metrics import ChannelThresholds

logger = logging.getLogger(__name__)


class StationNotFoundError(TelemetryError):
    """No registry row exists for the requested station id."""

    status_code = 404
    code = "STATION_NOT_FOUND"


@dataclass
class StationSnapshot:
    """The pipeline's view of one registry row."""

    station_id: int
    thresholds: ChannelThresholds
    soil_saturation: float | None = None
    precipitation: float | None = None
    last_updated: datetime | None = None
    is_available: bool = True
    ftp_file_path: str | None = None
    history_data_url: str | None = None
    city: str | None = None

    @classmethod
    def from_model(cls, station: Station) -> "StationSnapshot":
        return cls(
            station_id=station.station_id,
            thresholds=ChannelThresholds(
                wc1_max=station.wc1_max,
                wc2_max=station.wc2_max,
                wc3_max=station.wc3_max,
                wc4_max=station.wc4_max,
            ),
            soil_saturation=station.soil_saturation,
            precipitation=station.precipitation,
            last_updated=station.last_updated,
            is_available=station.is_available,
            ftp_file_path=station.ftp_file_path,
            history_data_url=station.history_data_url,
            city=station.city,
        )


@dataclass(frozen=True)
class BatchUpdateItem:
    """One station's freshly computed metrics, submitted once per cycle."""

    station_id: int
    soil_saturation: float
    precipitation: float


class StationRegistry:
    """SQLAlchemy-backed registry reads and the transactional metric write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def list_stations(self) -> list[StationSnapshot]:
        async with self._session_factory() as session:
            result = await session.execute(select(Station).order_by(Station.station_id))
            return [StationSnapshot.from_model(s) for s in result.scalars().all()]

    async def get_station(self, station_id: int) -> StationSnapshot:
        async with self._session_factory() as session:
            station = await session.get(Station, station_id)
        if station is None:
            raise StationNotFoundError(f"Station {station_id} not found")
        return StationSnapshot.from_model(station)

    async def get_station_thresholds(self, station_id: int) -> ChannelThresholds:
        return (await self.get_station(station_id)).thresholds

    async def _apply_item(
        self, session: AsyncSession, item: BatchUpdateItem, applied_at: datetime
    ) -> bool:
        """Write one item; False when the station id matches no row."""
        result = await session.execute(
            update(Station)
            .where(Station.station_id == item.station_id)
            .values(
                soil_saturation=item.soil_saturation,
                precipitation=item.precipitation,
                last_updated=applied_at,
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            logger.warning("Batch item for unknown station %s ignored", item.station_id)
            return False
        return True

    async def batch_update(
        self,
        items: Sequence[BatchUpdateItem],
        applied_at: datetime,
        atomic: bool = True,
    ) -> list[int]:
        """Apply metric updates and return the ids of the stations written.

        Items for ids with no registry row are logged and left out of the result.

        In atomic mode the whole batch is one transaction and any failure rolls
        everything back and propagates.  Otherwise each row runs inside its own
        savepoint and a failing row is logged and skipped.
        """
        applied: list[int] = []
        async with self._session_factory() as session:
            async with session.begin():
                for item in items:
                    if atomic:
                        if await self._apply_item(session, item, applied_at):
                            applied.append(item.station_id)
                        continue
                    try:
                        async with session.begin_nested():
                            written = await self._apply_item(session, item, applied_at)
                    except SQLAlchemyError as exc:
                        logger.warning(
                            "Skipping station %s in batch: %s", item.station_id, exc
                        )
                        continue
                    if written:
                        applied.append(item.station_id)
        return applied

"""Shared test fixtures for the station telemetry test suite.

Pipeline tests work on in-memory file content; the FTPS store is replaced by
``FakeTransport``.  Registry tests run against a throwaway SQLite database
through aiosqlite so the ORM statements are exercised for real without a live
PostgreSQL instance.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from station_telemetry.core.database import Base
from station_telemetry.models.station import Station
from station_telemetry.pipeline.ftp_transport import RemoteFileNotFoundError
from station_telemetry.pipeline.metrics import ChannelThresholds
from station_telemetry.services.station_registry import StationRegistry, StationSnapshot


# ── Sample files ──────────────────────────────────────────────────────────────

LATEST_BANKED = (
    '"TOA5","CR1000X","CR1000X","4410","CR1000X.Std.04","CPU:station3.CR1X","1234","Hourly",\n'
    '"TIMESTAMP","RECORD","WC1_Avg","WC2_Avg","WC3_Avg","WC4_Avg","Rain_mm_Tot",\n'
    '"TS","RN","m^3/m^3","m^3/m^3","m^3/m^3","m^3/m^3","mm",\n'
    '"","","Avg","Avg","Avg","Avg","Tot",\n'
    '"2024-05-01 08:00:00",101,0.18,0.28,0.09,0.38,0.5,\n'
    '"2024-05-01 09:00:00",102,0.19,0.29,0.10,0.39,1.0,\n'
    '"2024-05-01 10:00:00",103,0.20,0.30,0.10,0.40,1.5,\n'
)

HISTORY_SIMPLE = (
    "TIMESTAMP,WC1_Avg,WC2_Avg,WC3_Avg,WC4_Avg,Rain_mm_Tot\n"
    "2024-04-30 22:00:00,0.10,0.20,0.30,0.40,0\n"
    "2024-04-30 23:00:00,0.12,0.22,0.32,0.42,2\n"
    "2024-05-01 00:00:00,0.20,0.30,0.40,0.50,1\n"
)


# ── Factory helpers ───────────────────────────────────────────────────────────


def make_thresholds(
    wc1: float | None = 0.4,
    wc2: float | None = 0.6,
    wc3: float | None = 0.2,
    wc4: float | None = 0.8,
) -> ChannelThresholds:
    return ChannelThresholds(wc1_max=wc1, wc2_max=wc2, wc3_max=wc3, wc4_max=wc4)


def make_snapshot(
    station_id: int = 3,
    ftp_file_path: str | None = "station3_latest.dat",
    history_data_url: str | None = "station3_history.csv",
    thresholds: ChannelThresholds | None = None,
    soil_saturation: float | None = None,
    precipitation: float | None = None,
) -> StationSnapshot:
    """Create a StationSnapshot as the registry would return it."""
    return StationSnapshot(
        station_id=station_id,
        thresholds=thresholds or make_thresholds(),
        soil_saturation=soil_saturation,
        precipitation=precipitation,
        ftp_file_path=ftp_file_path,
        history_data_url=history_data_url,
        city=f"City {station_id}",
    )


def make_station_row(station_id: int = 3, **overrides) -> Station:
    """Create a Station ORM row for seeding the SQLite registry."""
    values = dict(
        station_id=station_id,
        city=f"City {station_id}",
        latitude=14.6,
        longitude=-90.5,
        soil_saturation=10.0,
        precipitation=0.0,
        last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
        is_available=True,
        wc1_max=0.4,
        wc2_max=0.6,
        wc3_max=0.2,
        wc4_max=0.8,
        ftp_file_path=f"station{station_id}_latest.dat",
        history_data_url=f"station{station_id}_history.csv",
    )
    values.update(overrides)
    return Station(**values)


class FakeTransport:
    """Stands in for FtpsTransport: serves files from a dict, or raises."""

    def __init__(self, files: dict[str, str | Exception] | None = None):
        self.files = files or {}
        self.calls: list[str] = []

    async def fetch_raw_async(self, file_name: str) -> list[str]:
        self.calls.append(file_name)
        content = self.files.get(file_name)
        if content is None:
            raise RemoteFileNotFoundError(f"Remote file not found: {file_name}")
        if isinstance(content, Exception):
            raise content
        return content.splitlines()


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def thresholds() -> ChannelThresholds:
    return make_thresholds()


@pytest.fixture
def mock_registry() -> MagicMock:
    """A registry whose reads and writes are AsyncMocks."""
    registry = MagicMock(spec=StationRegistry)
    registry.list_stations = AsyncMock(return_value=[])
    registry.get_station = AsyncMock(return_value=make_snapshot())
    registry.batch_update = AsyncMock(
        side_effect=lambda items, applied_at, atomic: [i.station_id for i in items]
    )
    return registry


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A file-backed SQLite database with the registry table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'registry.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_registry(session_factory) -> StationRegistry:
    """A registry seeded with stations 1, 2 and 3."""
    async with session_factory() as session:
        async with session.begin():
            session.add_all([make_station_row(1), make_station_row(2), make_station_row(3)])
    return StationRegistry(session_factory)

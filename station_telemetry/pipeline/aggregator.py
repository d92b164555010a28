"""Aggregate parsed station tables into daily and trailing-window summaries.

Station loggers are heterogeneous: column order and naming differ between
devices, so logical fields are resolved once per header by case-insensitive
matching and the resulting mapping is reused for every row.

Two reductions with deliberately different failure policies:

- ``daily_averages``: non-numeric cells are skipped (they add neither to the
  sum nor to that channel's denominator).  Used for long-horizon history.
- ``rolling_window_total``: non-numeric cells count as 0 so one bad row in
  the short window cannot blank the whole precipitation total.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from station_telemetry.core.config import settings
from station_telemetry.core.errors import TelemetryError
from station_telemetry.pipeline.table_parser import ParsedTable, RawRecord

logger = logging.getLogger(__name__)

CHANNELS: tuple[int, ...] = (1, 2, 3, 4)

# Substrings accepted for the timestamp column ("TMSTAMP" is common on older loggers)
_TIMESTAMP_TOKENS = ("timestamp", "timestmp", "tmstamp", "time_stamp", "datetime")
_TIMESTAMP_EXACT = ("ts",)

_WC_COLUMN = re.compile(r"^wc([1-4])(?![0-9])", re.IGNORECASE)

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d",
)


class AggregationError(TelemetryError):
    """Raised when a table cannot be reduced to the requested summary."""

    status_code = 422
    code = "UNPROCESSABLE_FILE"


class MissingColumnsError(AggregationError):
    """One or more required logical columns are absent from the header."""

    code = "MISSING_COLUMNS"

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Required columns not found: {', '.join(missing)}")

    def details(self) -> dict:
        return {"missing": self.missing}


# ── Column resolution ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ColumnMapping:
    """Logical field → physical column name, resolved once per header."""

    timestamp: str | None
    channels: dict[int, str] = field(default_factory=dict)

    def missing(self) -> list[str]:
        missing = [] if self.timestamp else ["timestamp"]
        missing.extend(f"wc{ch}" for ch in CHANNELS if ch not in self.channels)
        return missing


def find_timestamp_column(columns: Iterable[str]) -> str | None:
    for name in columns:
        lowered = name.strip().lower()
        if lowered in _TIMESTAMP_EXACT or any(token in lowered for token in _TIMESTAMP_TOKENS):
            return name
    return None


def find_channel_columns(columns: Iterable[str]) -> dict[int, str]:
    """Map channel number to the first column whose name starts with ``wc<n>``."""
    found: dict[int, str] = {}
    for name in columns:
        match = _WC_COLUMN.match(name.strip())
        if match is None:
            continue
        found.setdefault(int(match.group(1)), name)
    return found


def resolve_columns(columns: Sequence[str]) -> ColumnMapping:
    return ColumnMapping(
        timestamp=find_timestamp_column(columns),
        channels=find_channel_columns(columns),
    )


# ── Coercion ──────────────────────────────────────────────────────────────────


def to_float(value: str | None) -> float | None:
    """Parse a numeric cell; None for blanks, junk and the loggers' NAN/INF markers."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


# ── Readings ──────────────────────────────────────────────────────────────────


@dataclass
class TimestampedReading:
    """A raw record with its resolved timestamp and water-content cells."""

    record: RawRecord
    timestamp: datetime
    channels: dict[int, str | None] = field(default_factory=dict)


def to_readings(records: Iterable[RawRecord], mapping: ColumnMapping) -> list[TimestampedReading]:
    """Attach timestamps to records; records without a parseable timestamp are dropped."""
    readings: list[TimestampedReading] = []
    dropped = 0
    for record in records:
        ts = parse_timestamp(record.get(mapping.timestamp)) if mapping.timestamp else None
        if ts is None:
            dropped += 1
            continue
        readings.append(
            TimestampedReading(
                record=record,
                timestamp=ts,
                channels={ch: record.get(col) for ch, col in mapping.channels.items()},
            )
        )
    if dropped:
        logger.debug("Dropped %d readings without a resolvable timestamp", dropped)
    return readings


# ── Daily averaging ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DailyAggregate:
    """Finalized per-day averages; only produced once a pass is complete."""

    day: date
    count: int
    averages: dict[int, float | None]

    def as_dict(self) -> dict:
        row: dict = {"timestamp": self.day.isoformat(), "count": self.count}
        for ch in CHANNELS:
            row[f"wc{ch}"] = self.averages.get(ch)
        return row


@dataclass
class DailyAccumulator:
    """Running sums for one calendar day while a pass is in progress."""

    day: date
    count: int = 0
    sums: dict[int, float] = field(default_factory=lambda: {ch: 0.0 for ch in CHANNELS})
    contributions: dict[int, int] = field(default_factory=lambda: {ch: 0 for ch in CHANNELS})

    def add(self, reading: TimestampedReading) -> None:
        self.count += 1
        for ch, raw in reading.channels.items():
            value = to_float(raw)
            if value is None:
                continue
            self.sums[ch] += value
            self.contributions[ch] += 1

    def finalize(self) -> DailyAggregate:
        averages: dict[int, float | None] = {}
        for ch in CHANNELS:
            n = self.contributions[ch]
            averages[ch] = round(self.sums[ch] / n, 2) if n else None
        return DailyAggregate(day=self.day, count=self.count, averages=averages)


def daily_averages(table: ParsedTable) -> list[DailyAggregate]:
    """Average water content per calendar day, sorted by date.

    Raises:
        MissingColumnsError: if the timestamp column or any of wc1..wc4
            cannot be resolved from the header.
    """
    mapping = resolve_columns(table.columns)
    missing = mapping.missing()
    if missing:
        raise MissingColumnsError(missing)

    days: dict[date, DailyAccumulator] = {}
    for reading in to_readings(table.records, mapping):
        day = reading.timestamp.date()
        acc = days.get(day)
        if acc is None:
            acc = days[day] = DailyAccumulator(day=day)
        acc.add(reading)

    return [days[day].finalize() for day in sorted(days)]


# ── Rolling window ────────────────────────────────────────────────────────────


def rolling_window_total(
    records: Sequence[RawRecord],
    column: str | None = None,
    window: int | None = None,
) -> float:
    """Sum ``column`` over the last ``window`` rows; unusable cells count as 0."""
    column = column or settings.rain_column
    window = window or settings.rolling_window_rows
    total = 0.0
    for record in records[-window:]:
        total += to_float(record.get(column)) or 0.0
    return total


@dataclass
class DailyHistory:
    """History endpoint payload: daily averages plus the latest window's rain."""

    days: list[DailyAggregate]
    precipitation_window_total: float


def summarize_history(table: ParsedTable) -> DailyHistory:
    return DailyHistory(
        days=daily_averages(table),
        precipitation_window_total=rolling_window_total(table.records),
    )

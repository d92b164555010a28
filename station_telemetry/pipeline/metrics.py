"""Station metric calculator: soil saturation and trailing precipitation.

Saturation is the mean, over the computable channels, of the latest reading
divided by the station's configured ceiling for that channel, expressed as a
percentage.  A channel is computable when both the reading and the ceiling
are numeric and the ceiling is non-zero; other channels are left out of the
mean rather than counted as 0%.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from station_telemetry.pipeline.aggregator import (
    CHANNELS,
    find_channel_columns,
    rolling_window_total,
    to_float,
)
from station_telemetry.pipeline.table_parser import RawRecord


@dataclass(frozen=True)
class ChannelThresholds:
    """Per-sensor saturation ceilings configured for a station."""

    wc1_max: float | None = None
    wc2_max: float | None = None
    wc3_max: float | None = None
    wc4_max: float | None = None

    def for_channel(self, channel: int) -> float | None:
        value = getattr(self, f"wc{channel}_max")
        return to_float(str(value)) if value is not None else None


@dataclass(frozen=True)
class StationMetrics:
    soil_saturation: float
    precipitation: float
    channels_used: int


def saturation_percent(latest: RawRecord, thresholds: ChannelThresholds) -> tuple[float, int]:
    """Return (saturation %, number of channels that contributed)."""
    columns = find_channel_columns(latest.keys())
    ratios: list[float] = []
    for ch in CHANNELS:
        column = columns.get(ch)
        value = to_float(latest.get(column)) if column else None
        ceiling = thresholds.for_channel(ch)
        if value is None or ceiling is None or ceiling == 0:
            continue
        ratios.append(value / ceiling)

    if not ratios:
        return 0.0, 0
    return sum(ratios) / len(ratios) * 100, len(ratios)


def compute_station_metrics(
    rows: Sequence[RawRecord],
    thresholds: ChannelThresholds,
    rain_column: str | None = None,
    window: int | None = None,
) -> StationMetrics | None:
    """Derive a station's metrics from its latest table, or None if it is empty."""
    if not rows:
        return None

    saturation, used = saturation_percent(rows[-1], thresholds)
    precipitation = rolling_window_total(rows, column=rain_column, window=window)
    return StationMetrics(soil_saturation=saturation, precipitation=precipitation, channels_used=used)

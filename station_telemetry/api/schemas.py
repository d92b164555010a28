"""Pydantic schemas for the REST API request/response models."""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ── Batch update ──────────────────────────────────────────────────────────────


class BatchUpdateEntry(BaseModel):
    station_id: int = Field(..., gt=0)
    precipitation: float = Field(..., ge=0, description="Trailing-window rain total, mm")
    soil_saturation: float = Field(..., ge=0, description="Mean WC saturation, %")


class BatchUpdateRequest(BaseModel):
    """Request body for POST /stations/batch-update."""

    stations: list[BatchUpdateEntry]


class BatchUpdateResponse(BaseModel):
    message: str
    updated_count: int


# ── Station files ─────────────────────────────────────────────────────────────


class StationFileData(BaseModel):
    """Parsed rows of a station's latest table, or the reason they are missing."""

    station_id: int
    file_path: str | None = None
    data: list[dict[str, str]] | None = None
    error: str | None = None


class StationProcessResponse(BaseModel):
    """Response from PUT /stations/files/data/{station_id}/update."""

    message: str
    station_id: int
    soil_saturation: float
    precipitation: float
    updated_count: int


class WcHistoryPoint(BaseModel):
    timestamp: date
    count: int
    wc1: float | None = None
    wc2: float | None = None
    wc3: float | None = None
    wc4: float | None = None


class WcHistoryResponse(BaseModel):
    station_id: int
    file_path: str
    history: list[WcHistoryPoint]
    precipitation_window_total: float


# ── Heartbeat ─────────────────────────────────────────────────────────────────


class StationView(BaseModel):
    station_id: int
    city: str | None = None
    soil_saturation: float | None = None
    precipitation: float | None = None
    last_updated: datetime | None = None
    is_available: bool = True

    model_config = {"from_attributes": True}


class CycleSummary(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    stations_attempted: int
    updated: int
    failures: dict[int, str]
    batch_error: str | None = None


class HeartbeatStatusResponse(BaseModel):
    state: str
    interval_seconds: float
    stations_loaded: bool
    last_cycle: CycleSummary | None = None
    stations: list[StationView] = []


class HeartbeatRunResponse(BaseModel):
    dropped: bool
    cycle: CycleSummary | None = None


class ErrorBody(BaseModel):
    code: str
    message: str
    request_id: str | None = None


class ErrorResponse(BaseModel):
    """Envelope returned for every non-2xx response."""

    error: ErrorBody

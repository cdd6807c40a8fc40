"""Pydantic schemas for the HTTP endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from greenhouse.schemas.monitoring import AlertRecord, BreachRecord, SweepReport


# ── Request: Ingest ─────────────────────────────────


class ReadingIn(BaseModel):
    """A single already-normalized sensor sample."""
    device_id: str | int
    sensor_type: str
    value: float


class ReadingAccepted(BaseModel):
    device_id: str
    sensor_type: str
    value: float
    observed_at: datetime
    alert_created: bool = Field(description="True when the sample produced a new alert")


# ── Response: Alerts ────────────────────────────────


class AlertListResponse(BaseModel):
    """Response for GET /alerts."""
    alerts: list[AlertRecord]
    count: int


class AlertHistoryResponse(BaseModel):
    """Response for GET /alerts/history."""
    alerts: list[AlertRecord]
    total: int
    limit: int
    offset: int
    has_more: bool


# ── Response: Breaches ──────────────────────────────


class BreachListResponse(BaseModel):
    """Response for GET /breaches and GET /breaches/active."""
    breaches: list[BreachRecord]
    count: int


class SensorTypeStats(BaseModel):
    sensor_type: str
    count: int
    avg_value: float


class SeverityStats(BaseModel):
    severity: str
    total_count: int
    sensor_types: list[SensorTypeStats]


class BreachStatsResponse(BaseModel):
    """Response for GET /breaches/stats."""
    by_severity: list[SeverityStats]
    total: int
    active: int
    resolved: int


class CleanupResponse(BaseModel):
    days: int
    deleted_count: int


# ── Response: Monitor ───────────────────────────────


class MonitorStatusResponse(BaseModel):
    state: str = Field(description="running | stopped")
    interval_seconds: float
    cached_readings: int
    last_sweep: SweepReport | None = None

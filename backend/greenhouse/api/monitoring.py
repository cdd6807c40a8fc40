"""API routes for readings, alerts, threshold breaches and the monitor."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from greenhouse.exceptions import RecordNotFoundError
from greenhouse.schemas.api import (
    AlertHistoryResponse,
    AlertListResponse,
    BreachListResponse,
    BreachStatsResponse,
    CleanupResponse,
    MonitorStatusResponse,
    ReadingAccepted,
    ReadingIn,
)
from greenhouse.schemas.monitoring import (
    AlertRecord,
    BreachFilters,
    BreachRecord,
    BreachSeverity,
    SensorType,
    SweepReport,
)
from greenhouse.services.context import MonitoringContext

logger = logging.getLogger(__name__)

readings_router = APIRouter(prefix="/readings", tags=["Readings"])
alerts_router = APIRouter(prefix="/alerts", tags=["Alerts"])
breaches_router = APIRouter(prefix="/breaches", tags=["Threshold breaches"])
monitor_router = APIRouter(prefix="/monitor", tags=["Monitor"])


def get_context(request: Request) -> MonitoringContext:
    return request.app.state.monitoring


# ── POST /readings ──────────────────────────────────


@readings_router.post(
    "",
    response_model=ReadingAccepted,
    status_code=202,
    summary="Ingest a single sensor reading",
)
async def ingest_reading(body: ReadingIn, ctx: MonitoringContext = Depends(get_context)):
    """Cache the reading and run the immediate alert check."""
    result = await ctx.ingest.on_reading(body.device_id, body.sensor_type, body.value)
    if result is None:
        raise HTTPException(status_code=400, detail="Invalid sensor reading")
    return ReadingAccepted(
        device_id=result.reading.device_id,
        sensor_type=result.reading.sensor_type.value,
        value=result.reading.value,
        observed_at=result.reading.observed_at,
        alert_created=result.emission is not None and not result.emission.duplicate,
    )


# ── GET /alerts ─────────────────────────────────────


@alerts_router.get(
    "",
    response_model=AlertListResponse,
    summary="Unacknowledged alerts",
)
async def list_alerts(ctx: MonitoringContext = Depends(get_context)):
    try:
        alerts = await ctx.alerts.list_unacknowledged()
        return AlertListResponse(alerts=alerts, count=len(alerts))
    except Exception:
        logger.exception("Alert list endpoint failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@alerts_router.get(
    "/history",
    response_model=AlertHistoryResponse,
    summary="All alerts, newest first",
)
async def alert_history(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    ctx: MonitoringContext = Depends(get_context),
):
    try:
        alerts, total = await ctx.alerts.history(limit, offset)
        return AlertHistoryResponse(
            alerts=alerts,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )
    except Exception:
        logger.exception("Alert history endpoint failed")
        raise HTTPException(status_code=500, detail="Internal server error")


# ── POST /alerts/{alert_id}/acknowledge ─────────────


@alerts_router.post(
    "/{alert_id}/acknowledge",
    response_model=AlertRecord,
    summary="Acknowledge an alert",
)
async def acknowledge_alert(alert_id: UUID, ctx: MonitoringContext = Depends(get_context)):
    try:
        return await ctx.alerts.acknowledge(alert_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Alert not found")
    except Exception:
        logger.exception("Acknowledge failed for alert %s", alert_id)
        raise HTTPException(status_code=500, detail="Internal server error")


# ── GET /breaches ───────────────────────────────────


@breaches_router.get(
    "",
    response_model=BreachListResponse,
    summary="Threshold breach history with optional filters",
)
async def list_breaches(
    device_id: str | None = None,
    plant_id: str | None = None,
    sensor_type: SensorType | None = None,
    severity: BreachSeverity | None = None,
    is_active: bool | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    ctx: MonitoringContext = Depends(get_context),
):
    filters = BreachFilters(
        device_id=device_id,
        plant_id=plant_id,
        sensor_type=sensor_type,
        severity=severity,
        is_active=is_active,
        limit=limit,
    )
    try:
        breaches = await ctx.breaches.history(filters)
        return BreachListResponse(breaches=breaches, count=len(breaches))
    except Exception:
        logger.exception("Breach list endpoint failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@breaches_router.get(
    "/active",
    response_model=BreachListResponse,
    summary="Active threshold breaches",
)
async def active_breaches(ctx: MonitoringContext = Depends(get_context)):
    try:
        breaches = await ctx.breaches.active()
        return BreachListResponse(breaches=breaches, count=len(breaches))
    except Exception:
        logger.exception("Active breaches endpoint failed")
        raise HTTPException(status_code=500, detail="Internal server error")


@breaches_router.get(
    "/stats",
    response_model=BreachStatsResponse,
    summary="Breach counts by severity and sensor type",
)
async def breach_stats(ctx: MonitoringContext = Depends(get_context)):
    try:
        return BreachStatsResponse(**await ctx.breaches.stats())
    except Exception:
        logger.exception("Breach stats endpoint failed")
        raise HTTPException(status_code=500, detail="Internal server error")


# ── PUT /breaches/{breach_id}/resolve ───────────────


@breaches_router.put(
    "/{breach_id}/resolve",
    response_model=BreachRecord,
    summary="Manually resolve a breach",
)
async def resolve_breach(breach_id: UUID, ctx: MonitoringContext = Depends(get_context)):
    try:
        return await ctx.breaches.resolve(breach_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail="Threshold breach not found")
    except Exception:
        logger.exception("Resolve failed for breach %s", breach_id)
        raise HTTPException(status_code=500, detail="Internal server error")


# ── DELETE /breaches/cleanup ────────────────────────


@breaches_router.delete(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete resolved breaches older than N days",
)
async def cleanup_breaches(
    days: int = Query(default=30, ge=1, le=3650),
    ctx: MonitoringContext = Depends(get_context),
):
    try:
        deleted = await ctx.breaches.cleanup(days)
        return CleanupResponse(days=days, deleted_count=deleted)
    except Exception:
        logger.exception("Breach cleanup failed")
        raise HTTPException(status_code=500, detail="Internal server error")


# ── Monitor ─────────────────────────────────────────


@monitor_router.get(
    "/status",
    response_model=MonitorStatusResponse,
    summary="Sweep scheduler state",
)
async def monitor_status(ctx: MonitoringContext = Depends(get_context)):
    return MonitorStatusResponse(
        state=ctx.monitor.state.value,
        interval_seconds=ctx.monitor.interval.total_seconds(),
        cached_readings=len(ctx.cache),
        last_sweep=ctx.monitor.last_report,
    )


@monitor_router.post(
    "/sweep",
    response_model=SweepReport,
    summary="Run one sweep now",
)
async def run_sweep(ctx: MonitoringContext = Depends(get_context)):
    return await ctx.monitor.run_sweep()

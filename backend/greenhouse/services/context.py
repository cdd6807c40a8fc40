"""Wiring for the monitoring core, built once at process start."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import asyncpg

from greenhouse.config import (
    ALERT_SUPPRESSION_WINDOW,
    EVALUATION_TIMEOUT,
    STALE_AFTER,
    SWEEP_INTERVAL,
    Settings,
)
from greenhouse.locks import KeyedLocks
from greenhouse.services.alerts import AlertEmitter
from greenhouse.services.breaches import BreachLifecycleManager
from greenhouse.services.cache import LastReadingCache, utcnow
from greenhouse.services.ingest import SensorIngest
from greenhouse.services.monitor import ThresholdMonitor
from greenhouse.services.store import (
    MonitoringStore,
    PlantStore,
    PostgresMonitoringStore,
    PostgresPlantStore,
)


@dataclass
class MonitoringContext:
    cache: LastReadingCache
    plant_store: PlantStore
    store: MonitoringStore
    breaches: BreachLifecycleManager
    alerts: AlertEmitter
    monitor: ThresholdMonitor
    ingest: SensorIngest


def build_context(
    plant_store: PlantStore,
    store: MonitoringStore,
    *,
    sweep_interval: timedelta = SWEEP_INTERVAL,
    stale_after: timedelta = STALE_AFTER,
    suppression_window: timedelta = ALERT_SUPPRESSION_WINDOW,
    evaluation_timeout: timedelta = EVALUATION_TIMEOUT,
    clock: Callable[[], datetime] = utcnow,
) -> MonitoringContext:
    locks = KeyedLocks()
    cache = LastReadingCache(stale_after=stale_after, clock=clock)
    breaches = BreachLifecycleManager(store, locks=locks, clock=clock)
    alerts = AlertEmitter(store, suppression_window=suppression_window, locks=locks, clock=clock)
    monitor = ThresholdMonitor(
        plant_store,
        cache,
        breaches,
        alerts,
        interval=sweep_interval,
        evaluation_timeout=evaluation_timeout,
        clock=clock,
    )
    ingest = SensorIngest(cache, plant_store, alerts)
    return MonitoringContext(
        cache=cache,
        plant_store=plant_store,
        store=store,
        breaches=breaches,
        alerts=alerts,
        monitor=monitor,
        ingest=ingest,
    )


def context_from_settings(pool: asyncpg.Pool, settings: Settings) -> MonitoringContext:
    return build_context(
        PostgresPlantStore(pool),
        PostgresMonitoringStore(pool),
        sweep_interval=settings.sweep_interval,
        stale_after=settings.stale_after,
        suppression_window=settings.alert_suppression_window,
        evaluation_timeout=settings.evaluation_timeout,
    )

"""Periodic threshold sweep across every active plant."""

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from greenhouse.config import EVALUATION_TIMEOUT, SWEEP_INTERVAL
from greenhouse.exceptions import InvalidReadingError
from greenhouse.schemas.monitoring import PlantConfig, SensorType, SweepReport
from greenhouse.services.alerts import AlertEmitter
from greenhouse.services.breaches import BreachLifecycleManager, BreachOutcome
from greenhouse.services.cache import LastReadingCache, cache_key, utcnow
from greenhouse.services.evaluator import evaluate
from greenhouse.services.store import PlantStore
from greenhouse.services.thresholds import resolve_thresholds

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class ThresholdMonitor:
    """
    Two-state scheduler: ``start()`` runs a sweep right away and then every
    ``interval``; ``stop()`` cancels future ticks but lets an in-flight
    sweep finish. Each plant is evaluated in isolation, bounded by
    ``evaluation_timeout``.
    """

    def __init__(
        self,
        plant_store: PlantStore,
        cache: LastReadingCache,
        breaches: BreachLifecycleManager,
        alerts: AlertEmitter,
        interval: timedelta = SWEEP_INTERVAL,
        evaluation_timeout: timedelta = EVALUATION_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.plant_store = plant_store
        self.cache = cache
        self.breaches = breaches
        self.alerts = alerts
        self.interval = interval
        self.evaluation_timeout = evaluation_timeout
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self.last_report: SweepReport | None = None

    @property
    def state(self) -> MonitorState:
        if self._task is not None and not self._task.done():
            return MonitorState.RUNNING
        return MonitorState.STOPPED

    def start(self) -> None:
        """Start sweeping; a second call while running is a logged no-op."""
        if self.state is MonitorState.RUNNING:
            logger.warning("Threshold monitoring already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop_event))
        logger.info(
            "Threshold monitoring started (every %ds)", self.interval.total_seconds()
        )

    async def stop(self) -> None:
        """Cancel future ticks and wait for an in-flight sweep to complete."""
        if self._task is None:
            return
        task, self._task = self._task, None
        self._stop_event.set()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Threshold monitoring stopped")

    async def _run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.run_sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Threshold sweep failed")

            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self.interval.total_seconds()
                )
            except asyncio.TimeoutError:
                pass

    async def run_sweep(self) -> SweepReport:
        """Evaluate every active plant once; never raises for per-plant failures."""
        now = self._clock()
        report = SweepReport(started_at=now)

        try:
            plants = await self.plant_store.list_plants_with_thresholds()
        except Exception:
            logger.exception("Could not load plants for threshold sweep")
            report.failures += 1
            report.finished_at = self._clock()
            self.last_report = report
            return report

        for plant in plants:
            if not plant.is_active or not plant.assigned_device_ids:
                continue
            report.plants += 1
            try:
                await asyncio.wait_for(
                    self._evaluate_plant(plant, now, report),
                    timeout=self.evaluation_timeout.total_seconds(),
                )
            except asyncio.TimeoutError:
                report.failures += 1
                logger.warning(
                    "Threshold evaluation for plant %s timed out after %ss",
                    plant.plant_id, self.evaluation_timeout.total_seconds(),
                )
            except Exception:
                report.failures += 1
                logger.exception("Threshold evaluation failed for plant %s", plant.plant_id)

        report.finished_at = self._clock()
        self.last_report = report
        logger.info(
            "Sweep: %d plants, %d evaluated, %d stale, %d new breaches, %d resolved, %d alerts, %d failures",
            report.plants, report.evaluated, report.skipped_stale, report.new_breaches,
            report.resolved, report.alerts_created, report.failures,
        )
        return report

    async def _evaluate_plant(self, plant: PlantConfig, now: datetime, report: SweepReport) -> None:
        for device_id in plant.assigned_device_ids:
            for sensor in SensorType:
                thresholds = resolve_thresholds(plant, sensor)
                if thresholds is None:
                    continue

                entry = self.cache.get(device_id, sensor)
                if entry is None:
                    report.skipped_missing += 1
                    continue
                if self.cache.is_stale(entry, now):
                    report.skipped_stale += 1
                    logger.debug("Skipping stale reading %s", cache_key(device_id, sensor))
                    continue

                try:
                    result = evaluate(entry.value, thresholds, sensor)
                except InvalidReadingError as exc:
                    report.skipped_invalid += 1
                    logger.warning("Skipping %s: %s", cache_key(device_id, sensor), exc)
                    continue

                report.evaluated += 1
                try:
                    outcome = await self.breaches.record_evaluation(
                        device_id, sensor, plant.plant_id, entry.value, thresholds, result
                    )
                    if outcome in (BreachOutcome.NEW, BreachOutcome.ONGOING):
                        if outcome is BreachOutcome.NEW:
                            report.new_breaches += 1
                        # Ongoing breaches re-alert once the suppression window lapses
                        emission = await self.alerts.emit_breach(
                            plant.plant_id, device_id, sensor, entry.value, thresholds, result
                        )
                        if not emission.duplicate:
                            report.alerts_created += 1
                    elif outcome is BreachOutcome.RESOLVED:
                        report.resolved += 1
                except Exception:
                    report.failures += 1
                    logger.exception(
                        "Could not record evaluation for %s (plant %s)",
                        cache_key(device_id, sensor), plant.plant_id,
                    )

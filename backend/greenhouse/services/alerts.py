"""Alert emission with a per (plant, alert type) suppression window."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

from greenhouse.config import ALERT_SUPPRESSION_WINDOW
from greenhouse.locks import KeyedLocks
from greenhouse.schemas.monitoring import (
    AlertEmission,
    AlertRecord,
    AlertSeverity,
    AlertType,
    BreachResult,
    BreachType,
    SensorType,
    ThresholdSet,
)
from greenhouse.services.cache import utcnow
from greenhouse.services.evaluator import alert_severity_for
from greenhouse.services.store import MonitoringStore

logger = logging.getLogger(__name__)

_SENSOR_LABELS = {
    SensorType.temperature: "Temperature",
    SensorType.humidity: "Humidity",
    SensorType.soil_moisture: "Soil moisture",
    SensorType.light: "Light",
}

_BREACH_PHRASES = {
    BreachType.below_min: "critically low",
    BreachType.above_max: "critically high",
    BreachType.below_ideal: "below ideal range",
    BreachType.above_ideal: "above ideal range",
}


def breach_title(sensor_type, breach_type: BreachType) -> str:
    """E.g. ``Temperature critically low``."""
    return f"{_SENSOR_LABELS[SensorType(sensor_type)]} {_BREACH_PHRASES[breach_type]}"


class AlertEmitter:
    """
    Creates alerts unless an unacknowledged alert of the same type for the
    same plant was created within the suppression window. A suppressed
    attempt never mutates the existing alert.
    """

    def __init__(
        self,
        store: MonitoringStore,
        suppression_window: timedelta = ALERT_SUPPRESSION_WINDOW,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.suppression_window = suppression_window
        self.locks = locks or KeyedLocks()
        self._clock = clock

    async def maybe_emit(
        self,
        plant_id,
        device_id,
        alert_type,
        severity,
        title: str,
        message: str,
        sensor_value: float | None = None,
        thresholds: ThresholdSet | None = None,
    ) -> AlertEmission:
        plant_id = str(plant_id)
        alert_type = AlertType(alert_type)
        now = self._clock()

        async with self.locks.hold(("alert", plant_id, alert_type.value)):
            recent = await self.store.find_recent_unacknowledged_alert(
                plant_id, alert_type, now - self.suppression_window
            )
            if recent is not None:
                logger.info(
                    "Skipping duplicate alert for plant %s, type %s", plant_id, alert_type.value
                )
                return AlertEmission(alert=recent, duplicate=True)

            alert = await self.store.create_alert(AlertRecord(
                id=uuid.uuid4(),
                plant_id=plant_id,
                device_id=str(device_id),
                type=alert_type,
                severity=AlertSeverity(severity),
                title=title,
                message=message,
                sensor_value=sensor_value,
                threshold=thresholds,
                acknowledged=False,
                created_at=now,
            ))
            logger.warning("New %s alert created: %s", alert.severity.value, alert.title)
            return AlertEmission(alert=alert)

    async def emit_breach(
        self,
        plant_id,
        device_id,
        sensor_type,
        value: float,
        thresholds: ThresholdSet,
        result: BreachResult,
    ) -> AlertEmission:
        sensor = SensorType(sensor_type)
        return await self.maybe_emit(
            plant_id,
            device_id,
            AlertType(sensor.value),
            alert_severity_for(result.severity),
            breach_title(sensor, result.breach_type),
            result.message,
            sensor_value=value,
            thresholds=thresholds,
        )

    async def emit_offline(self, plant_id, device_id, detail: str | None = None) -> AlertEmission:
        message = f"Device {device_id} reported offline"
        if detail:
            message = f"{message}: {detail}"
        return await self.maybe_emit(
            plant_id,
            device_id,
            AlertType.offline,
            AlertSeverity.warning,
            f"Device {device_id} offline",
            message,
        )

    # ── Presentation pass-throughs ──

    async def list_unacknowledged(self) -> list[AlertRecord]:
        return await self.store.list_unacknowledged_alerts()

    async def history(self, limit: int = 100, offset: int = 0) -> tuple[list[AlertRecord], int]:
        return await self.store.alert_history(limit, offset)

    async def acknowledge(self, alert_id: UUID) -> AlertRecord:
        alert = await self.store.acknowledge_alert(alert_id, self._clock())
        logger.info("Alert %s acknowledged", alert_id)
        return alert

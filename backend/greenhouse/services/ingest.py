"""
Sensor reading ingest.

Every sample updates the last-reading cache and gets an immediate alert
check against the owning plant's thresholds. Breach records are kept by
the periodic sweep; the ingest path only decides whether to alert now.

Topics follow the ESP32 firmware layout ``esp32_<n>/<sensor>`` with either a
JSON object (``{"temperature": 21.5}``) or a bare number as payload, plus
``esp32_<n>/status`` for device status reports.
"""

import json
import logging
import re
from datetime import datetime
from typing import NamedTuple

from greenhouse.exceptions import InvalidReadingError
from greenhouse.schemas.monitoring import AlertEmission, SensorReading, SensorType
from greenhouse.services.alerts import AlertEmitter
from greenhouse.services.cache import LastReadingCache
from greenhouse.services.evaluator import check_value, evaluate
from greenhouse.services.store import PlantStore
from greenhouse.services.thresholds import resolve_thresholds

logger = logging.getLogger(__name__)

TOPIC_PATTERN = re.compile(r"^esp32_(\d+)/(\w+)$")
STATUS_CHANNEL = "status"

# Firmware publishes "light_level" for the light sensor
SENSOR_ALIASES = {"light_level": SensorType.light.value}


class IngestResult(NamedTuple):
    reading: SensorReading
    emission: AlertEmission | None = None


def normalize_sensor_type(sensor_type) -> SensorType:
    name = str(getattr(sensor_type, "value", sensor_type)).strip().lower()
    try:
        return SensorType(SENSOR_ALIASES.get(name, name))
    except ValueError:
        raise InvalidReadingError(f"unknown sensor type {sensor_type!r}") from None


def parse_topic(topic: str) -> tuple[str, str] | None:
    """``esp32_3/humidity`` -> ``("3", "humidity")``; None for foreign topics."""
    match = TOPIC_PATTERN.match(topic.strip())
    if not match:
        return None
    return str(int(match.group(1))), match.group(2)


def parse_payload(sensor_type: str, payload) -> float:
    """Extract the numeric value from a JSON object, JSON number or bare number."""
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    text = str(payload).strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = text

    if isinstance(data, dict):
        for key in (sensor_type, *[k for k, v in SENSOR_ALIASES.items() if v == sensor_type]):
            if key in data:
                data = data[key]
                break
        else:
            raise InvalidReadingError(f"no {sensor_type} value in payload {text!r}")

    if isinstance(data, str):
        try:
            data = float(data)
        except ValueError:
            raise InvalidReadingError(f"invalid sensor value {text!r}") from None
    return check_value(data)


class SensorIngest:
    """Entry point for parsed telemetry; wired to the monitoring core at startup."""

    def __init__(
        self,
        cache: LastReadingCache,
        plant_store: PlantStore,
        alerts: AlertEmitter,
    ):
        self.cache = cache
        self.plant_store = plant_store
        self.alerts = alerts

    async def on_reading(
        self, device_id, sensor_type, value, observed_at: datetime | None = None
    ) -> IngestResult | None:
        """Cache the sample and alert immediately if it breaches; None if rejected."""
        try:
            sensor = normalize_sensor_type(sensor_type)
            value = check_value(value)
        except InvalidReadingError as exc:
            logger.warning("Rejected reading from device %s: %s", device_id, exc)
            return None

        entry = self.cache.update(device_id, sensor, value, observed_at)
        logger.debug("Reading: device %s, %s = %s", entry.device_id, sensor.value, value)

        try:
            plant = await self.plant_store.get_plant_for_device(entry.device_id)
            if plant is None:
                return IngestResult(entry)
            thresholds = resolve_thresholds(plant, sensor)
            if thresholds is None:
                return IngestResult(entry)
            result = evaluate(value, thresholds, sensor)
            if result is None:
                return IngestResult(entry)
            emission = await self.alerts.emit_breach(
                plant.plant_id, entry.device_id, sensor, value, thresholds, result
            )
            return IngestResult(entry, emission)
        except Exception:
            # The reading stays cached; the next sweep picks it up
            logger.exception(
                "Alert check failed for device %s, %s", entry.device_id, sensor.value
            )
            return IngestResult(entry)

    async def on_status(self, device_id, payload) -> AlertEmission | None:
        """Handle a device status report; ``offline`` raises an alert for its plant."""
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode("utf-8", errors="replace")
        try:
            data = json.loads(payload)
        except ValueError:
            data = {"status": str(payload).strip()}
        if not isinstance(data, dict):
            data = {"status": str(data)}

        status = str(data.get("status", "")).lower()
        logger.info("Device %s status: %s", device_id, status or data)
        if status != "offline":
            return None

        try:
            plant = await self.plant_store.get_plant_for_device(str(device_id))
            if plant is None:
                logger.debug("Offline device %s has no assigned plant", device_id)
                return None
            return await self.alerts.emit_offline(plant.plant_id, device_id, data.get("reason"))
        except Exception:
            logger.exception("Could not raise offline alert for device %s", device_id)
            return None

    async def on_message(self, topic: str, payload):
        """Dispatch a raw broker message to ``on_reading`` or ``on_status``."""
        parsed = parse_topic(topic)
        if parsed is None:
            logger.warning("Invalid topic format: %s", topic)
            return None

        device_id, channel = parsed
        if channel == STATUS_CHANNEL:
            return await self.on_status(device_id, payload)

        try:
            sensor = normalize_sensor_type(channel)
            value = parse_payload(sensor.value, payload)
        except InvalidReadingError as exc:
            logger.warning("Invalid sensor message on %s: %s", topic, exc)
            return None
        return await self.on_reading(device_id, sensor, value)

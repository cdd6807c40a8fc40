"""In-memory cache of the most recent reading per (device, sensor)."""

from datetime import datetime, timedelta, timezone
from typing import Callable

from greenhouse.config import STALE_AFTER
from greenhouse.schemas.monitoring import SensorReading


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cache_key(device_id, sensor_type) -> str:
    sensor = getattr(sensor_type, "value", sensor_type)
    return f"{device_id}_{sensor}"


class LastReadingCache:
    """
    Latest value per ``<device>_<sensor>`` key.

    Entries are only ever overwritten by newer readings; stale entries are
    left in place for the next real update. All access happens on the
    event loop, so a plain dict gives readers a consistent view.
    """

    def __init__(
        self,
        stale_after: timedelta = STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.stale_after = stale_after
        self._clock = clock
        self._entries: dict[str, SensorReading] = {}

    def update(self, device_id, sensor_type, value: float, observed_at: datetime | None = None) -> SensorReading:
        entry = SensorReading(
            device_id=str(device_id),
            sensor_type=sensor_type,
            value=value,
            observed_at=observed_at or self._clock(),
        )
        self._entries[cache_key(entry.device_id, entry.sensor_type)] = entry
        return entry

    def get(self, device_id, sensor_type) -> SensorReading | None:
        return self._entries.get(cache_key(device_id, sensor_type))

    def is_stale(self, entry: SensorReading, now: datetime | None = None) -> bool:
        now = now or self._clock()
        return now - entry.observed_at > self.stale_after

    def get_fresh(self, device_id, sensor_type, now: datetime | None = None) -> SensorReading | None:
        """Return the entry only if it exists and is within the freshness window."""
        entry = self.get(device_id, sensor_type)
        if entry is None or self.is_stale(entry, now):
            return None
        return entry

    def snapshot(self) -> list[SensorReading]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

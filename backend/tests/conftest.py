"""
Shared fixtures: a controllable clock and in-memory stores that follow the
same contracts as the PostgreSQL stores.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from greenhouse.exceptions import RecordNotFoundError
from greenhouse.schemas.monitoring import (
    AlertRecord,
    AlertType,
    BreachFilters,
    BreachRecord,
    BreachType,
    PlantConfig,
    SensorType,
    ThresholdSet,
)
from greenhouse.services.context import build_context
from greenhouse.services.store import _assemble_stats


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakePlantStore:
    def __init__(self, plants: list[PlantConfig] | None = None):
        self.plants = list(plants or [])
        self.fail = False
        self.list_calls = 0

    async def list_plants_with_thresholds(self) -> list[PlantConfig]:
        self.list_calls += 1
        if self.fail:
            raise OSError("plant store unavailable")
        return [p for p in self.plants if p.is_active and p.assigned_device_ids]

    async def get_plant_for_device(self, device_id: str) -> PlantConfig | None:
        if self.fail:
            raise OSError("plant store unavailable")
        for plant in self.plants:
            if plant.is_active and str(device_id) in plant.assigned_device_ids:
                return plant
        return None


class FakeMonitoringStore:
    """In-memory breach/alert store; ``failing_devices`` and ``delays`` inject faults."""

    def __init__(self):
        self.breaches: dict[UUID, BreachRecord] = {}
        self.alerts: dict[UUID, AlertRecord] = {}
        self.failing_devices: set[str] = set()
        self.delays: dict[str, float] = {}

    async def _touch(self, device_id: str) -> None:
        if device_id in self.delays:
            await asyncio.sleep(self.delays[device_id])
        if device_id in self.failing_devices:
            raise OSError(f"store unavailable for device {device_id}")

    def active_breaches(self, device_id=None, sensor_type=None) -> list[BreachRecord]:
        return [
            b for b in self.breaches.values()
            if b.is_active
            and (device_id is None or b.device_id == device_id)
            and (sensor_type is None or b.sensor_type.value == sensor_type)
        ]

    async def find_active_breach(self, device_id, sensor_type, breach_type):
        await self._touch(device_id)
        for b in self.active_breaches(device_id, sensor_type):
            if b.breach_type == BreachType(breach_type):
                return b
        return None

    async def upsert_breach(self, record: BreachRecord):
        await self._touch(record.device_id)
        for b in self.active_breaches(record.device_id, record.sensor_type.value):
            if b.breach_type == record.breach_type:
                updated = b.model_copy(update={
                    "current_value": record.current_value,
                    "updated_at": record.updated_at,
                })
                self.breaches[b.id] = updated
                return updated, False
        self.breaches[record.id] = record
        return record, True

    async def resolve_breaches(self, device_id, sensor_type, resolved_at, keep_type=None):
        await self._touch(device_id)
        count = 0
        for b in self.active_breaches(device_id, sensor_type):
            if keep_type is not None and b.breach_type == keep_type:
                continue
            self.breaches[b.id] = b.model_copy(update={
                "is_active": False, "resolved_at": resolved_at, "updated_at": resolved_at,
            })
            count += 1
        return count

    async def find_recent_unacknowledged_alert(self, plant_id, alert_type, since):
        matches = [
            a for a in self.alerts.values()
            if a.plant_id == plant_id
            and a.type == AlertType(alert_type)
            and not a.acknowledged
            and a.created_at >= since
        ]
        return max(matches, key=lambda a: a.created_at, default=None)

    async def create_alert(self, record: AlertRecord) -> AlertRecord:
        await self._touch(record.device_id)
        self.alerts[record.id] = record
        return record

    async def list_breaches(self, filters: BreachFilters):
        rows = [
            b for b in self.breaches.values()
            if (filters.device_id is None or b.device_id == filters.device_id)
            and (filters.plant_id is None or b.plant_id == filters.plant_id)
            and (filters.sensor_type is None or b.sensor_type == filters.sensor_type)
            and (filters.severity is None or b.severity == filters.severity)
            and (filters.is_active is None or b.is_active == filters.is_active)
        ]
        rows.sort(key=lambda b: b.created_at, reverse=True)
        return rows[:filters.limit]

    async def resolve_breach(self, breach_id, resolved_at):
        if breach_id not in self.breaches:
            raise RecordNotFoundError("breach", breach_id)
        b = self.breaches[breach_id]
        self.breaches[breach_id] = b.model_copy(update={
            "is_active": False,
            "resolved_at": b.resolved_at or resolved_at,
            "updated_at": resolved_at,
        })
        return self.breaches[breach_id]

    async def breach_stats(self):
        groups: dict[tuple[str, str], list[float]] = {}
        for b in self.breaches.values():
            groups.setdefault((b.severity.value, b.sensor_type.value), []).append(b.current_value)
        rows = [
            {"severity": sev, "sensor_type": sensor, "count": len(v), "avg_value": sum(v) / len(v)}
            for (sev, sensor), v in sorted(groups.items())
        ]
        total = len(self.breaches)
        active = len(self.active_breaches())
        return _assemble_stats(rows, total, active)

    async def delete_resolved_breaches(self, before):
        doomed = [b.id for b in self.breaches.values() if not b.is_active and b.created_at < before]
        for breach_id in doomed:
            del self.breaches[breach_id]
        return len(doomed)

    async def list_unacknowledged_alerts(self):
        rows = [a for a in self.alerts.values() if not a.acknowledged]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def alert_history(self, limit, offset):
        rows = sorted(self.alerts.values(), key=lambda a: a.created_at, reverse=True)
        return rows[offset:offset + limit], len(rows)

    async def acknowledge_alert(self, alert_id, acknowledged_at):
        if alert_id not in self.alerts:
            raise RecordNotFoundError("alert", alert_id)
        a = self.alerts[alert_id]
        self.alerts[alert_id] = a.model_copy(update={
            "acknowledged": True,
            "acknowledged_at": a.acknowledged_at or acknowledged_at,
        })
        return self.alerts[alert_id]


# ── Fixtures ────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temperature_thresholds():
    return ThresholdSet(min=18, max=30, ideal_min=20, ideal_max=25)


@pytest.fixture
def humidity_thresholds():
    return ThresholdSet(min=40, max=90, ideal_min=55, ideal_max=75)


@pytest.fixture
def tomato(temperature_thresholds, humidity_thresholds):
    return PlantConfig(
        plant_id="plant-1",
        name="Tomato Plant 1",
        assigned_device_ids=[1],
        thresholds={
            SensorType.temperature: temperature_thresholds,
            SensorType.humidity: humidity_thresholds,
        },
    )


@pytest.fixture
def lettuce(temperature_thresholds):
    return PlantConfig(
        plant_id="plant-2",
        name="Lettuce Plant 1",
        assigned_device_ids=["2"],
        thresholds={SensorType.temperature: temperature_thresholds},
    )


@pytest.fixture
def plant_store(tomato, lettuce):
    return FakePlantStore([tomato, lettuce])


@pytest.fixture
def store():
    return FakeMonitoringStore()


@pytest.fixture
def ctx(plant_store, store, clock):
    return build_context(plant_store, store, clock=clock)

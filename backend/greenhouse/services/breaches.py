"""Breach lifecycle: create, refresh and resolve threshold breach records."""

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable
from uuid import UUID

from greenhouse.locks import KeyedLocks
from greenhouse.schemas.monitoring import (
    BreachFilters,
    BreachRecord,
    BreachResult,
    SensorType,
    ThresholdSet,
)
from greenhouse.services.cache import cache_key, utcnow
from greenhouse.services.store import MonitoringStore

logger = logging.getLogger(__name__)


class BreachOutcome(str, Enum):
    NEW = "new"            # first detection, caller should alert
    ONGOING = "ongoing"    # active record refreshed in place
    RESOLVED = "resolved"  # value back in range, active records closed
    CLEAR = "clear"        # value in range and nothing was active


class BreachLifecycleManager:
    """
    Keeps at most one active breach per (device, sensor, breach type).

    Writes for one (device, sensor) pair are serialized with a keyed lock, so
    ingest-triggered and sweep-triggered evaluations cannot interleave their
    find-then-write sequences. Store errors propagate to the caller.
    """

    def __init__(
        self,
        store: MonitoringStore,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.locks = locks or KeyedLocks()
        self._clock = clock

    async def record_evaluation(
        self,
        device_id,
        sensor_type,
        plant_id,
        value: float,
        thresholds: ThresholdSet,
        result: BreachResult | None,
    ) -> BreachOutcome:
        device_id = str(device_id)
        sensor = SensorType(sensor_type).value
        now = self._clock()

        async with self.locks.hold(("breach", device_id, sensor)):
            if result is None:
                resolved = await self.store.resolve_breaches(device_id, sensor, now)
                if resolved:
                    logger.info("Resolved %d breach(es) for %s", resolved, cache_key(device_id, sensor))
                    return BreachOutcome.RESOLVED
                return BreachOutcome.CLEAR

            # The value sits in exactly one band; close breaches of any other type
            superseded = await self.store.resolve_breaches(
                device_id, sensor, now, keep_type=result.breach_type
            )
            if superseded:
                logger.info(
                    "Superseded %d breach(es) for %s by %s",
                    superseded, cache_key(device_id, sensor), result.breach_type.value,
                )

            existing = await self.store.find_active_breach(device_id, sensor, result.breach_type)
            if existing is not None:
                refreshed = existing.model_copy(update={"current_value": value, "updated_at": now})
                await self.store.upsert_breach(refreshed)
                logger.debug("Breach ongoing: %s", result.message)
                return BreachOutcome.ONGOING

            record = BreachRecord(
                id=uuid.uuid4(),
                sensor_id=cache_key(device_id, sensor),
                device_id=device_id,
                plant_id=str(plant_id),
                sensor_type=sensor,
                current_value=value,
                thresholds=thresholds,
                breach_type=result.breach_type,
                severity=result.severity,
                message=result.message,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            _, created = await self.store.upsert_breach(record)
            if not created:
                # Another writer inserted it between our find and upsert
                return BreachOutcome.ONGOING
            logger.warning("Threshold breach detected: %s", result.message)
            return BreachOutcome.NEW

    # ── Presentation pass-throughs ──

    async def history(self, filters: BreachFilters | None = None) -> list[BreachRecord]:
        return await self.store.list_breaches(filters or BreachFilters())

    async def active(self, limit: int = 100) -> list[BreachRecord]:
        return await self.store.list_breaches(BreachFilters(is_active=True, limit=limit))

    async def resolve(self, breach_id: UUID) -> BreachRecord:
        """Manually close a breach regardless of its current readings."""
        breach = await self.store.resolve_breach(breach_id, self._clock())
        logger.info("Breach %s resolved manually", breach_id)
        return breach

    async def stats(self) -> dict:
        return await self.store.breach_stats()

    async def cleanup(self, days: int = 30) -> int:
        """Delete resolved breaches created more than ``days`` days ago."""
        cutoff = self._clock() - timedelta(days=days)
        deleted = await self.store.delete_resolved_breaches(cutoff)
        logger.info("Cleaned up %d breach record(s) older than %d days", deleted, days)
        return deleted

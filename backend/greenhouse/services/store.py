"""Persistence layer: SQL queries for plants, threshold breaches and alerts.

Uses asyncpg directly (pool) with raw SQL. The partial unique index on
active breaches lets the breach upsert run as a single atomic statement.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

import asyncpg

from greenhouse.exceptions import RecordNotFoundError
from greenhouse.schemas.monitoring import (
    AlertRecord,
    AlertType,
    BreachFilters,
    BreachRecord,
    BreachType,
    PlantConfig,
)
from greenhouse.services.thresholds import merge_thresholds


# ── Interfaces the monitoring core depends on ───────


class PlantStore(Protocol):
    async def list_plants_with_thresholds(self) -> list[PlantConfig]: ...

    async def get_plant_for_device(self, device_id: str) -> PlantConfig | None: ...


class MonitoringStore(Protocol):
    async def find_active_breach(
        self, device_id: str, sensor_type: str, breach_type: BreachType
    ) -> BreachRecord | None: ...

    async def upsert_breach(self, record: BreachRecord) -> tuple[BreachRecord, bool]:
        """Insert ``record`` or refresh the matching active breach; flag is True on insert."""
        ...

    async def resolve_breaches(
        self,
        device_id: str,
        sensor_type: str,
        resolved_at: datetime,
        keep_type: BreachType | None = None,
    ) -> int: ...

    async def find_recent_unacknowledged_alert(
        self, plant_id: str, alert_type: AlertType, since: datetime
    ) -> AlertRecord | None: ...

    async def create_alert(self, record: AlertRecord) -> AlertRecord: ...

    # Presentation pass-throughs

    async def list_breaches(self, filters: BreachFilters) -> list[BreachRecord]: ...

    async def resolve_breach(self, breach_id: UUID, resolved_at: datetime) -> BreachRecord: ...

    async def breach_stats(self) -> dict: ...

    async def delete_resolved_breaches(self, before: datetime) -> int: ...

    async def list_unacknowledged_alerts(self) -> list[AlertRecord]: ...

    async def alert_history(self, limit: int, offset: int) -> tuple[list[AlertRecord], int]: ...

    async def acknowledge_alert(self, alert_id: UUID, acknowledged_at: datetime) -> AlertRecord: ...


# ── Row mapping ─────────────────────────────────────


def _breach_from_row(row) -> BreachRecord:
    return BreachRecord.model_validate(dict(row))


def _alert_from_row(row) -> AlertRecord:
    return AlertRecord.model_validate(dict(row))


def _plant_from_row(row) -> PlantConfig:
    return PlantConfig(
        plant_id=row["id"],
        name=row["name"],
        assigned_device_ids=row["assigned_devices"] or [],
        thresholds=merge_thresholds(row["default_thresholds"], row["thresholds"]),
        is_active=row["is_active"],
    )


_PLANT_COLUMNS = """
    p.id,
    p.name,
    p.assigned_devices,
    p.thresholds,
    p.is_active,
    pt.default_thresholds
"""


# ── Plants ──────────────────────────────────────────


class PostgresPlantStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def list_plants_with_thresholds(self) -> list[PlantConfig]:
        """All active plants that have at least one assigned device."""
        rows = await self.pool.fetch(f"""
            SELECT {_PLANT_COLUMNS}
            FROM plants p
            LEFT JOIN plant_types pt ON pt.type = p.plant_type
            WHERE p.is_active = true
              AND p.status = 'active'
              AND cardinality(p.assigned_devices) > 0
            ORDER BY p.name
        """)
        return [_plant_from_row(r) for r in rows]

    async def get_plant_for_device(self, device_id: str) -> PlantConfig | None:
        row = await self.pool.fetchrow(f"""
            SELECT {_PLANT_COLUMNS}
            FROM plants p
            LEFT JOIN plant_types pt ON pt.type = p.plant_type
            WHERE p.is_active = true
              AND $1 = ANY(p.assigned_devices)
            ORDER BY p.updated_at DESC
            LIMIT 1
        """, str(device_id))
        return _plant_from_row(row) if row else None


# ── Breaches and alerts ─────────────────────────────


class PostgresMonitoringStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def find_active_breach(
        self, device_id: str, sensor_type: str, breach_type: BreachType
    ) -> BreachRecord | None:
        row = await self.pool.fetchrow("""
            SELECT *
            FROM threshold_breaches
            WHERE device_id = $1
              AND sensor_type = $2
              AND breach_type = $3
              AND is_active = true
        """, device_id, sensor_type, BreachType(breach_type).value)
        return _breach_from_row(row) if row else None

    async def upsert_breach(self, record: BreachRecord) -> tuple[BreachRecord, bool]:
        row = await self.pool.fetchrow("""
            INSERT INTO threshold_breaches (
                id, sensor_id, device_id, plant_id, sensor_type, current_value, thresholds,
                breach_type, severity, message, is_active, created_at, updated_at, resolved_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, true, $11, $12, NULL)
            ON CONFLICT (device_id, sensor_type, breach_type)
                WHERE is_active
            DO UPDATE SET
                current_value = EXCLUDED.current_value,
                updated_at = EXCLUDED.updated_at
            RETURNING *, (xmax = 0) AS inserted
        """, record.id, record.sensor_id, record.device_id, record.plant_id,
             record.sensor_type.value, record.current_value, record.thresholds.model_dump(),
             record.breach_type.value, record.severity.value, record.message,
             record.created_at, record.updated_at)
        return _breach_from_row(row), bool(row["inserted"])

    async def resolve_breaches(
        self,
        device_id: str,
        sensor_type: str,
        resolved_at: datetime,
        keep_type: BreachType | None = None,
    ) -> int:
        status = await self.pool.execute("""
            UPDATE threshold_breaches
            SET is_active = false, resolved_at = $3, updated_at = $3
            WHERE device_id = $1
              AND sensor_type = $2
              AND is_active = true
              AND ($4::text IS NULL OR breach_type <> $4::text)
        """, device_id, sensor_type, resolved_at, keep_type.value if keep_type else None)
        # asyncpg returns the command tag, e.g. "UPDATE 2"
        return int(status.split()[-1])

    async def find_recent_unacknowledged_alert(
        self, plant_id: str, alert_type: AlertType, since: datetime
    ) -> AlertRecord | None:
        row = await self.pool.fetchrow("""
            SELECT *
            FROM alerts
            WHERE plant_id = $1
              AND type = $2
              AND acknowledged = false
              AND created_at >= $3
            ORDER BY created_at DESC
            LIMIT 1
        """, plant_id, AlertType(alert_type).value, since)
        return _alert_from_row(row) if row else None

    async def create_alert(self, record: AlertRecord) -> AlertRecord:
        row = await self.pool.fetchrow("""
            INSERT INTO alerts (
                id, plant_id, device_id, type, severity, title, message,
                sensor_value, threshold, acknowledged, acknowledged_at, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, false, NULL, $10)
            RETURNING *
        """, record.id, record.plant_id, record.device_id, record.type.value,
             record.severity.value, record.title, record.message, record.sensor_value,
             record.threshold.model_dump() if record.threshold else None,
             record.created_at)
        return _alert_from_row(row)

    async def list_breaches(self, filters: BreachFilters) -> list[BreachRecord]:
        clauses = []
        args = []
        for column, value in (
            ("device_id", filters.device_id),
            ("plant_id", filters.plant_id),
            ("sensor_type", filters.sensor_type.value if filters.sensor_type else None),
            ("severity", filters.severity.value if filters.severity else None),
            ("is_active", filters.is_active),
        ):
            if value is not None:
                args.append(value)
                clauses.append(f"{column} = ${len(args)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        args.append(filters.limit)
        rows = await self.pool.fetch(f"""
            SELECT *
            FROM threshold_breaches
            {where}
            ORDER BY created_at DESC
            LIMIT ${len(args)}
        """, *args)
        return [_breach_from_row(r) for r in rows]

    async def resolve_breach(self, breach_id: UUID, resolved_at: datetime) -> BreachRecord:
        row = await self.pool.fetchrow("""
            UPDATE threshold_breaches
            SET is_active = false,
                resolved_at = COALESCE(resolved_at, $2),
                updated_at = $2
            WHERE id = $1
            RETURNING *
        """, breach_id, resolved_at)
        if row is None:
            raise RecordNotFoundError("breach", breach_id)
        return _breach_from_row(row)

    async def breach_stats(self) -> dict:
        """Counts per severity / sensor type plus active vs resolved totals."""
        rows = await self.pool.fetch("""
            SELECT
                severity,
                sensor_type,
                COUNT(*)::int AS count,
                AVG(current_value)::float AS avg_value
            FROM threshold_breaches
            GROUP BY severity, sensor_type
            ORDER BY severity, sensor_type
        """)
        totals = await self.pool.fetchrow("""
            SELECT
                COUNT(*)::int AS total,
                COUNT(*) FILTER (WHERE is_active)::int AS active
            FROM threshold_breaches
        """)
        return _assemble_stats([dict(r) for r in rows], totals["total"], totals["active"])

    async def delete_resolved_breaches(self, before: datetime) -> int:
        status = await self.pool.execute("""
            DELETE FROM threshold_breaches
            WHERE is_active = false AND created_at < $1
        """, before)
        return int(status.split()[-1])

    async def list_unacknowledged_alerts(self) -> list[AlertRecord]:
        rows = await self.pool.fetch("""
            SELECT *
            FROM alerts
            WHERE acknowledged = false
            ORDER BY created_at DESC
        """)
        return [_alert_from_row(r) for r in rows]

    async def alert_history(self, limit: int, offset: int) -> tuple[list[AlertRecord], int]:
        rows = await self.pool.fetch("""
            SELECT *
            FROM alerts
            ORDER BY created_at DESC
            LIMIT $1 OFFSET $2
        """, limit, offset)
        total = await self.pool.fetchval("SELECT COUNT(*)::int FROM alerts")
        return [_alert_from_row(r) for r in rows], total

    async def acknowledge_alert(self, alert_id: UUID, acknowledged_at: datetime) -> AlertRecord:
        row = await self.pool.fetchrow("""
            UPDATE alerts
            SET acknowledged = true,
                acknowledged_at = COALESCE(acknowledged_at, $2)
            WHERE id = $1
            RETURNING *
        """, alert_id, acknowledged_at)
        if row is None:
            raise RecordNotFoundError("alert", alert_id)
        return _alert_from_row(row)


def _assemble_stats(rows: list[dict], total: int, active: int) -> dict:
    """Group per-(severity, sensor) rows under their severity."""
    by_severity: dict[str, dict] = {}
    for r in rows:
        group = by_severity.setdefault(
            r["severity"], {"severity": r["severity"], "total_count": 0, "sensor_types": []}
        )
        group["sensor_types"].append({
            "sensor_type": r["sensor_type"],
            "count": r["count"],
            "avg_value": round(float(r["avg_value"]), 2),
        })
        group["total_count"] += r["count"]
    return {
        "by_severity": list(by_severity.values()),
        "total": total,
        "active": active,
        "resolved": total - active,
    }

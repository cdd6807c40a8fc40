"""Pydantic models for the monitoring core (readings, thresholds, breaches, alerts)."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Enumerations ────────────────────────────────────


class SensorType(str, Enum):
    temperature = "temperature"
    humidity = "humidity"
    soil_moisture = "soil_moisture"
    light = "light"


class AlertType(str, Enum):
    temperature = "temperature"
    humidity = "humidity"
    soil_moisture = "soil_moisture"
    light = "light"
    offline = "offline"


class BreachType(str, Enum):
    below_min = "below_min"
    above_max = "above_max"
    below_ideal = "below_ideal"
    above_ideal = "above_ideal"


class BreachSeverity(str, Enum):
    critical = "critical"
    warning = "warning"


class AlertSeverity(str, Enum):
    info = "info"
    warning = "warning"
    critical = "critical"


# ── Configuration inputs ────────────────────────────


class ThresholdSet(BaseModel):
    """Four-band threshold model: absolute min/max around the ideal band."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    ideal_min: float
    ideal_max: float

    @model_validator(mode="after")
    def _check_band_order(self) -> "ThresholdSet":
        if not (self.min <= self.ideal_min <= self.ideal_max <= self.max):
            raise ValueError(
                "thresholds must satisfy min <= ideal_min <= ideal_max <= max "
                f"(got {self.min}, {self.ideal_min}, {self.ideal_max}, {self.max})"
            )
        return self


class PlantConfig(BaseModel):
    """A plant as seen by the monitor: assigned devices + resolved thresholds."""

    plant_id: str
    name: str = ""
    assigned_device_ids: list[str] = Field(default_factory=list)
    thresholds: dict[SensorType, ThresholdSet] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator("plant_id", mode="before")
    @classmethod
    def _plant_id_to_str(cls, value):
        return str(value)

    @field_validator("assigned_device_ids", mode="before")
    @classmethod
    def _device_ids_to_str(cls, value):
        # ESP32 ids arrive as ints from MQTT topics and as strings from the API
        return [str(v) for v in value or []]


# ── Evaluation results ──────────────────────────────


class SensorReading(BaseModel):
    device_id: str
    sensor_type: SensorType
    value: float
    observed_at: datetime


class BreachResult(BaseModel):
    """Outcome of classifying one value; absence of a breach is ``None``."""

    model_config = ConfigDict(frozen=True)

    breach_type: BreachType
    severity: BreachSeverity
    message: str


# ── Persisted records ───────────────────────────────


class BreachRecord(BaseModel):
    id: UUID
    sensor_id: str = Field(description="<device_id>_<sensor_type>")
    device_id: str
    plant_id: str
    sensor_type: SensorType
    current_value: float
    thresholds: ThresholdSet
    breach_type: BreachType
    severity: BreachSeverity
    message: str
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None


class AlertRecord(BaseModel):
    id: UUID
    plant_id: str
    device_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    sensor_value: float | None = None
    threshold: ThresholdSet | None = None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
    created_at: datetime


class AlertEmission(BaseModel):
    """Result of an emit attempt; ``duplicate`` carries the suppressing alert."""

    alert: AlertRecord
    duplicate: bool = False


class BreachFilters(BaseModel):
    device_id: str | None = None
    plant_id: str | None = None
    sensor_type: SensorType | None = None
    severity: BreachSeverity | None = None
    is_active: bool | None = None
    limit: int = Field(default=100, ge=1, le=1000)


class SweepReport(BaseModel):
    """Counters for a single sweep pass."""

    started_at: datetime
    finished_at: datetime | None = None
    plants: int = 0
    evaluated: int = 0
    skipped_missing: int = 0
    skipped_stale: int = 0
    skipped_invalid: int = 0
    new_breaches: int = 0
    resolved: int = 0
    alerts_created: int = 0
    failures: int = 0

"""Threshold resolution for a plant and sensor type."""

import logging

from pydantic import ValidationError

from greenhouse.schemas.monitoring import PlantConfig, SensorType, ThresholdSet

logger = logging.getLogger(__name__)


def resolve_thresholds(plant: PlantConfig, sensor_type) -> ThresholdSet | None:
    """Return the plant's thresholds for ``sensor_type``, or None to skip evaluation."""
    try:
        sensor = SensorType(sensor_type)
    except ValueError:
        return None
    return plant.thresholds.get(sensor)


def merge_thresholds(type_defaults: dict | None, overrides: dict | None) -> dict[SensorType, ThresholdSet]:
    """
    Overlay a plant's own thresholds on its plant-type defaults.

    Both inputs are raw JSON mappings ``{sensor_type: {min, max, ideal_min, ideal_max}}``.
    The plant wins per sensor type. Unknown sensor types and invalid bands
    are dropped with a warning so one bad entry does not hide the others.
    """
    merged = {**(type_defaults or {}), **(overrides or {})}
    resolved: dict[SensorType, ThresholdSet] = {}
    for name, raw in merged.items():
        try:
            sensor = SensorType(name)
        except ValueError:
            logger.warning("Ignoring thresholds for unknown sensor type %r", name)
            continue
        if raw is None:
            continue
        try:
            resolved[sensor] = ThresholdSet.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring invalid %s thresholds %s: %s", name, raw, exc)
    return resolved

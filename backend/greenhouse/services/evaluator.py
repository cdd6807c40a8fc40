"""
Breach classification.

A value is checked against the four threshold bands in a fixed order;
critical (absolute) bands take precedence over the ideal bands and the
first match wins. Bounds are in range: all comparisons are strict.
"""

import math
from numbers import Real

from greenhouse.exceptions import InvalidReadingError
from greenhouse.schemas.monitoring import (
    AlertSeverity,
    BreachResult,
    BreachSeverity,
    BreachType,
    ThresholdSet,
)

_CRITICAL_TYPES = frozenset({BreachType.below_min, BreachType.above_max})


def severity_for(breach_type: BreachType) -> BreachSeverity:
    if breach_type in _CRITICAL_TYPES:
        return BreachSeverity.critical
    return BreachSeverity.warning


def alert_severity_for(severity: BreachSeverity) -> AlertSeverity:
    return AlertSeverity(severity.value)


def format_value(value: float) -> str:
    """Shortest exact form: 12.0 -> '12', 17.9999999 -> '17.9999999'."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def check_value(value) -> float:
    """Reject anything that is not a finite real number."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidReadingError(f"sensor value must be numeric, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidReadingError(f"sensor value must be finite, got {value!r}")
    return value


def _breach(breach_type: BreachType, message: str) -> BreachResult:
    return BreachResult(
        breach_type=breach_type,
        severity=severity_for(breach_type),
        message=message,
    )


def evaluate(value, thresholds: ThresholdSet, sensor_type) -> BreachResult | None:
    """Classify ``value``; returns None when it lies inside the ideal band."""
    value = check_value(value)
    sensor = getattr(sensor_type, "value", sensor_type)
    shown = format_value(value)

    if value < thresholds.min:
        return _breach(
            BreachType.below_min,
            f"{sensor} is critically low: {shown} (minimum: {format_value(thresholds.min)})",
        )
    if value > thresholds.max:
        return _breach(
            BreachType.above_max,
            f"{sensor} is critically high: {shown} (maximum: {format_value(thresholds.max)})",
        )
    if value < thresholds.ideal_min:
        return _breach(
            BreachType.below_ideal,
            f"{sensor} is below ideal range: {shown} (ideal minimum: {format_value(thresholds.ideal_min)})",
        )
    if value > thresholds.ideal_max:
        return _breach(
            BreachType.above_ideal,
            f"{sensor} is above ideal range: {shown} (ideal maximum: {format_value(thresholds.ideal_max)})",
        )
    return None

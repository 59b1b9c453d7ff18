"""Per-type trend estimation over a window of readings."""

from __future__ import annotations

import statistics
from fractions import Fraction
from typing import Dict, Iterable, List, Sequence

from models.records import Confidence, SensorReading, TrendDirection, TrendResult
from services.ratios import Defined, Ratio, Undefined, guarded_mean, guarded_ratio

STABLE_BAND_PERCENT = 10.0
HIGH_CONFIDENCE_MIN_SAMPLES = 10
HIGH_CONFIDENCE_MAX_CV = 0.2
LOW_CONFIDENCE_MAX_SAMPLES = 5
LOW_CONFIDENCE_MIN_CV = 0.5


def classify_direction(change_percent: float) -> TrendDirection:
    if abs(change_percent) <= STABLE_BAND_PERCENT:
        return TrendDirection.stable
    if change_percent > 0:
        return TrendDirection.increasing
    return TrendDirection.decreasing


def classify_confidence(sample_count: int, cv: float | None) -> Confidence:
    """Map sample count and coefficient of variation to a confidence label.

    An undefined ``cv`` (zero mean) always yields ``low``.
    """
    if cv is None:
        return Confidence.low
    if sample_count >= HIGH_CONFIDENCE_MIN_SAMPLES and cv < HIGH_CONFIDENCE_MAX_CV:
        return Confidence.high
    if sample_count < LOW_CONFIDENCE_MAX_SAMPLES or cv > LOW_CONFIDENCE_MIN_CV:
        return Confidence.low
    return Confidence.medium


def percent_change(first: float, last: float) -> Ratio:
    """Change from ``first`` to ``last`` in percent, in exact arithmetic.

    The float difference of two large readings can overflow even when the
    percentage itself is representable.
    """
    if first == 0:
        return Undefined("division by zero")
    change = (Fraction(last) - Fraction(first)) * 100 / Fraction(first)
    try:
        return Defined(float(change))
    except OverflowError:
        return Undefined("overflow")


def coefficient_of_variation(values: Sequence[float]) -> float | None:
    mean = guarded_mean(values).value_or(0.0)
    ratio = guarded_ratio(statistics.pstdev(values), abs(mean))
    if isinstance(ratio, Defined):
        return ratio.value
    return None


class TrendEstimator:

    def estimate(self, sensor_type: str, values: Sequence[float]) -> TrendResult:
        """Estimate the trend of time-ordered values for one sensor type."""
        sample_count = len(values)
        if sample_count < 2:
            only = values[0] if values else None
            return TrendResult(
                sensor_type=sensor_type,
                direction=TrendDirection.stable,
                change_percent=0.0,
                confidence=Confidence.low,
                first_value=only,
                last_value=only,
                sample_count=sample_count,
            )

        first, last = values[0], values[-1]
        change = percent_change(first, last)
        if not isinstance(change, Defined):
            # Zero baseline, or a change too large for a float.
            return TrendResult(
                sensor_type=sensor_type,
                direction=TrendDirection.stable,
                change_percent=0.0,
                confidence=Confidence.low,
                first_value=first,
                last_value=last,
                sample_count=sample_count,
            )
        change_percent = round(change.value, 2)

        return TrendResult(
            sensor_type=sensor_type,
            direction=classify_direction(change_percent),
            change_percent=change_percent,
            confidence=classify_confidence(sample_count, coefficient_of_variation(values)),
            first_value=first,
            last_value=last,
            sample_count=sample_count,
        )

    def estimate_by_type(self, readings: Iterable[SensorReading]) -> Dict[str, TrendResult]:
        groups: Dict[str, List[SensorReading]] = {}
        for reading in readings:
            groups.setdefault(reading.sensor_type, []).append(reading)

        trends: Dict[str, TrendResult] = {}
        for sensor_type, group in groups.items():
            ordered = sorted(group, key=lambda reading: reading.timestamp)
            trends[sensor_type] = self.estimate(
                sensor_type, [reading.value for reading in ordered]
            )
        return trends

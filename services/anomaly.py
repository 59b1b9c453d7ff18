"""Statistical outlier test for newly ingested readings."""

from __future__ import annotations

import math
import statistics
import sys
from fractions import Fraction
from typing import Sequence

from models.records import AnomalyDecision
from services.errors import ValidationError
from services.ratios import guarded_mean

DEFAULT_WINDOW_SIZE = 10
DEFAULT_MIN_HISTORY = 3
DEFAULT_SIGMA_THRESHOLD = 3.0

# Reported as ``standard_deviations`` when a value departs from a constant
# history, where the true ratio is unbounded.
STANDARD_DEVIATION_CAP = 1_000_000.0

# Reported as ``deviation`` when the distance from the mean exceeds the
# largest float.
DEVIATION_CAP = sys.float_info.max


def _finite_or(value: Fraction, cap: float) -> float:
    try:
        return min(float(value), cap)
    except OverflowError:
        return cap


def _require_number(value: object, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


class AnomalyFlagger:
    """Flags a value deviating from the recent mean by more than N sigma."""

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        min_history: int = DEFAULT_MIN_HISTORY,
        sigma_threshold: float = DEFAULT_SIGMA_THRESHOLD,
    ) -> None:
        self.window_size = window_size
        self.min_history = min_history
        self.sigma_threshold = sigma_threshold

    def evaluate(self, new_value: float, recent_values: Sequence[float]) -> AnomalyDecision:
        """Compare ``new_value`` with up to ``window_size`` prior values.

        ``recent_values`` is ordered newest first and must not include the
        value being evaluated; anything beyond the window is ignored.
        """
        value = _require_number(new_value, "reading_value")
        history = [
            _require_number(item, "recent value")
            for item in list(recent_values)[: self.window_size]
        ]

        if len(history) < self.min_history:
            return AnomalyDecision(
                is_anomaly=False,
                checked=False,
                reason="insufficient history",
            )

        mean = guarded_mean(history).value_or(0.0)
        stddev = statistics.pstdev(history)
        # Exact rationals: value - mean can overflow for readings near the
        # float limits.
        distance = abs(Fraction(value) - Fraction(mean))
        deviation = _finite_or(distance, DEVIATION_CAP)

        if stddev == 0:
            is_anomaly = distance > 0
            sigmas = STANDARD_DEVIATION_CAP if is_anomaly else 0.0
        else:
            is_anomaly = distance > Fraction(self.sigma_threshold) * Fraction(stddev)
            sigmas = _finite_or(distance / Fraction(stddev), STANDARD_DEVIATION_CAP)

        return AnomalyDecision(
            is_anomaly=is_anomaly,
            checked=True,
            deviation=deviation,
            standard_deviations=sigmas,
            recent_average=mean,
            reason="statistical anomaly" if is_anomaly else None,
        )

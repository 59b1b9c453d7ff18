"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Granularity(str, Enum):
    """Time bucket widths supported by the aggregator."""

    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"


class TrendDirection(str, Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"


class Confidence(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A recorded reading tagged with its owning sensor."""

    sensor_id: str
    sensor_type: str
    timestamp: datetime
    value: float
    unit: Optional[str] = None
    quality_score: float = 1.0
    anomaly_detected: bool = False
    field_id: Optional[str] = None
    field_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BucketSummary:
    """Aggregate statistics for one sensor within one time bucket."""

    sensor_id: str
    sensor_type: str
    bucket_start: datetime
    mean_value: float
    min_value: float
    max_value: float
    mean_quality: float
    anomaly_count: int
    reading_count: int
    unit: Optional[str] = None
    field_id: Optional[str] = None
    field_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TrendResult:
    sensor_type: str
    direction: TrendDirection
    change_percent: float
    confidence: Confidence
    first_value: Optional[float]
    last_value: Optional[float]
    sample_count: int


@dataclass(frozen=True, slots=True)
class AnomalyDecision:
    """Outcome of comparing a new value against recent history.

    ``checked`` is false when there was not enough history to run the test;
    the statistics are then ``None`` and the reading is never anomalous.
    """

    is_anomaly: bool
    checked: bool
    deviation: Optional[float] = None
    standard_deviations: Optional[float] = None
    recent_average: Optional[float] = None
    reason: Optional[str] = None

"""Aggregation logic for sensor readings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.records import BucketSummary, Granularity, SensorReading
from services.errors import ValidationError
from services.ratios import guarded_mean, guarded_ratio

BucketKey = Tuple[int, ...]


@dataclass
class TypeStats:
    values: List[float] = field(default_factory=list)
    min_value: float | None = None
    max_value: float | None = None
    latest: float | None = None

    def add(self, value: float) -> None:
        self.values.append(value)
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value
        self.latest = value

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.values),
            "average": guarded_mean(self.values).value_or(0.0),
            "min": self.min_value,
            "max": self.max_value,
            "latest": self.latest,
        }


@dataclass
class AggregationSummary:
    """Overall statistics for every reading in a query window."""

    total_readings: int = 0
    average_value: float | None = None
    min_value: float | None = None
    max_value: float | None = None
    average_quality: float | None = None
    anomaly_count: int = 0
    anomaly_rate: float | None = None
    sensor_types: Dict[str, TypeStats] = field(default_factory=dict)
    start: datetime | None = None
    end: datetime | None = None

    def as_dict(self) -> Dict[str, Any]:
        if not self.total_readings:
            return {}
        return {
            "total_readings": self.total_readings,
            "average_value": self.average_value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "average_quality": self.average_quality,
            "anomaly_count": self.anomaly_count,
            "anomaly_rate": self.anomaly_rate,
            "sensor_types": {
                name: stats.as_dict() for name, stats in self.sensor_types.items()
            },
            "time_range": {"start": self.start, "end": self.end},
        }


def as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def _week_start(day: date) -> date:
    # date.weekday() is Monday=0; shift so weeks begin on Sunday.
    return day - timedelta(days=(day.weekday() + 1) % 7)


def bucket_key(timestamp: datetime, granularity: Granularity) -> BucketKey:
    """Map a timestamp to its bucket for the given granularity (UTC)."""
    moment = as_utc(timestamp)
    if granularity is Granularity.hourly:
        return (moment.year, moment.month, moment.day, moment.hour)
    if granularity is Granularity.daily:
        return (moment.year, moment.month, moment.day)
    if granularity is Granularity.weekly:
        start = _week_start(moment.date())
        return (start.year, start.month, start.day)
    raise ValidationError(f"Unsupported granularity: {granularity!r}")


def bucket_start(key: BucketKey) -> datetime:
    year, month, day, *rest = key
    hour = rest[0] if rest else 0
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def parse_granularity(value: str | Granularity | None) -> Granularity:
    if value is None:
        return Granularity.hourly
    if isinstance(value, Granularity):
        return value
    try:
        return Granularity(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Granularity)
        raise ValidationError(
            f"Invalid aggregation {value!r}. Must be one of: {allowed}"
        ) from exc


@dataclass
class _Bucket:
    readings: List[SensorReading] = field(default_factory=list)

    def summarize(self, key: BucketKey) -> BucketSummary:
        first = self.readings[0]
        values = [reading.value for reading in self.readings]
        qualities = [reading.quality_score for reading in self.readings]
        count = len(values)
        low, high = min(values), max(values)
        return BucketSummary(
            sensor_id=first.sensor_id,
            sensor_type=first.sensor_type,
            bucket_start=bucket_start(key),
            mean_value=guarded_mean(values).value_or(low),
            min_value=low,
            max_value=high,
            mean_quality=guarded_mean(qualities).value_or(0.0),
            anomaly_count=sum(1 for reading in self.readings if reading.anomaly_detected),
            reading_count=count,
            unit=first.unit,
            field_id=first.field_id,
            field_name=first.field_name,
        )


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(
        self,
        readings: Iterable[SensorReading],
        granularity: Granularity | str = Granularity.hourly,
    ) -> List[BucketSummary]:
        """Summarize readings per sensor and time bucket.

        Sensors keep the order in which they first appear; buckets within a
        sensor are chronological. Sensors without readings yield nothing.
        """
        level = parse_granularity(granularity)
        per_sensor: Dict[Tuple[str, str], Dict[BucketKey, _Bucket]] = {}

        for reading in readings:
            sensor_key = (reading.sensor_id, reading.sensor_type)
            buckets = per_sensor.setdefault(sensor_key, {})
            key = bucket_key(reading.timestamp, level)
            buckets.setdefault(key, _Bucket()).readings.append(reading)

        summaries: List[BucketSummary] = []
        for buckets in per_sensor.values():
            for key in sorted(buckets):
                summaries.append(buckets[key].summarize(key))
        return summaries

    def summarize(self, readings: Iterable[SensorReading]) -> AggregationSummary:
        summary = AggregationSummary()
        values: List[float] = []
        qualities: List[float] = []
        earliest: Optional[datetime] = None
        latest: Optional[datetime] = None

        for reading in readings:
            summary.total_readings += 1
            value = reading.value
            values.append(value)
            qualities.append(reading.quality_score)

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value
            if reading.anomaly_detected:
                summary.anomaly_count += 1

            summary.sensor_types.setdefault(reading.sensor_type, TypeStats()).add(value)

            if earliest is None or reading.timestamp < earliest:
                earliest = reading.timestamp
            if latest is None or reading.timestamp > latest:
                latest = reading.timestamp

        if summary.total_readings:
            count = summary.total_readings
            summary.average_value = guarded_mean(values).value_or(0.0)
            summary.average_quality = guarded_mean(qualities).value_or(0.0)
            summary.anomaly_rate = guarded_ratio(summary.anomaly_count * 100, count).value_or(0.0)
            summary.start = earliest
            summary.end = latest

        return summary

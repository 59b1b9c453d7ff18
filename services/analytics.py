"""Time-series analytics over stored sensor readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, List, Optional

from app.schemas import (
    Analytics,
    AnalyticsParameters,
    AnalyticsResponse,
    StoredReading,
    TimeSeriesPoint,
    TrendSummary,
)
from datastore.sensor_store import SensorStore, build_default_store
from models.records import SensorReading
from services.aggregator import Aggregator, parse_granularity
from services.health import summarize_sensor_health
from services.trends import TrendEstimator
from settings import ANALYTICS_PERIOD_HOURS, get_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnalyticsQuery:
    sensor_id: Optional[str] = None
    field_id: Optional[str] = None
    sensor_type: Optional[str] = None
    period: Optional[str] = None
    aggregation: Optional[str] = None


def to_domain(reading: StoredReading) -> SensorReading:
    return SensorReading(
        sensor_id=reading.sensor_id,
        sensor_type=reading.sensor_type,
        timestamp=reading.timestamp,
        value=reading.reading_value,
        unit=reading.unit,
        quality_score=reading.quality_score,
        anomaly_detected=reading.anomaly_detected,
        field_id=reading.field_id,
        field_name=reading.field_name,
    )


class AnalyticsService:
    """Builds the analytics payload: time series, summary, trends, alerts, health."""

    def __init__(
        self,
        store: SensorStore,
        aggregator: Aggregator,
        estimator: TrendEstimator,
        default_period: str = "7d",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.estimator = estimator
        self.default_period = default_period
        self.clock = clock

    def resolve_period(self, period: Optional[str]) -> str:
        candidate = (period or "").strip().lower()
        return candidate if candidate in ANALYTICS_PERIOD_HOURS else self.default_period

    def run(self, query: AnalyticsQuery) -> AnalyticsResponse:
        granularity = parse_granularity(query.aggregation)
        period = self.resolve_period(query.period)
        since = self.clock() - timedelta(hours=ANALYTICS_PERIOD_HOURS[period])
        parameters = AnalyticsParameters(
            period=period,
            aggregation=granularity.value,
            sensor_id=query.sensor_id,
            field_id=query.field_id,
            sensor_type=query.sensor_type,
        )

        stored = self.store.query_readings(
            sensor_id=query.sensor_id,
            sensor_type=query.sensor_type,
            field_id=query.field_id,
            since=since,
        )
        if not stored:
            return AnalyticsResponse(
                analytics=Analytics(),
                parameters=parameters,
                message="No sensor data available for the specified period",
            )

        readings = [to_domain(reading) for reading in stored]
        buckets = self.aggregator.aggregate(readings, granularity)
        logger.debug(
            "Aggregated sensor readings",
            extra={"granularity": granularity.value, "reading_count": len(readings)},
        )

        time_series: List[TimeSeriesPoint] = [
            TimeSeriesPoint(
                timestamp=bucket.bucket_start,
                sensor_id=bucket.sensor_id,
                sensor_type=bucket.sensor_type,
                field_id=bucket.field_id,
                field_name=bucket.field_name,
                reading_value=bucket.mean_value,
                min_value=bucket.min_value,
                max_value=bucket.max_value,
                unit=bucket.unit,
                quality_score=bucket.mean_quality,
                anomaly_count=bucket.anomaly_count,
                reading_count=bucket.reading_count,
            )
            for bucket in buckets
        ]
        trends = {
            sensor_type: TrendSummary(
                sensor_type=result.sensor_type,
                direction=result.direction,
                change_percent=result.change_percent,
                confidence=result.confidence,
                first_value=result.first_value,
                last_value=result.last_value,
                sample_count=result.sample_count,
            )
            for sensor_type, result in self.estimator.estimate_by_type(readings).items()
        }
        alerts = self.store.query_alerts(
            sensor_id=query.sensor_id,
            sensor_type=query.sensor_type,
            since=since,
        )

        return AnalyticsResponse(
            analytics=Analytics(
                timeSeries=time_series,
                summary=self.aggregator.summarize(readings).as_dict(),
                trends=trends,
                alerts=alerts,
                sensorHealth=summarize_sensor_health(self.store.list_sensors()),
            ),
            parameters=parameters,
        )


@lru_cache
def build_default_analytics() -> AnalyticsService:
    settings = get_settings()
    return AnalyticsService(
        store=build_default_store(),
        aggregator=Aggregator(),
        estimator=TrendEstimator(),
        default_period=settings.default_period,
    )

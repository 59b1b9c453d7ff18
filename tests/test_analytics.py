from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas import (
    AlertType,
    SensorAlert,
    SensorRecord,
    SensorStatus,
    Severity,
    StoredReading,
)
from datastore.sensor_store import SensorStore
from models.records import Confidence, TrendDirection
from services.aggregator import Aggregator
from services.analytics import AnalyticsQuery, AnalyticsService
from services.errors import ValidationError
from services.health import summarize_sensor_health
from services.trends import TrendEstimator

NOW = datetime(2024, 1, 16, 0, 0, tzinfo=timezone.utc)


def _sensor(sensor_id: str, sensor_type: str, **kwargs) -> SensorRecord:
    fields = {
        "sensor_id": sensor_id,
        "sensor_type": sensor_type,
        "field_id": "field-1",
        "field_name": "North plot",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(kwargs)
    return SensorRecord(**fields)


def _reading(sensor: SensorRecord, value: float, timestamp: datetime, **kwargs) -> StoredReading:
    return StoredReading(
        reading_id=f"{sensor.sensor_id}-{timestamp.isoformat()}",
        sensor_id=sensor.sensor_id,
        sensor_type=sensor.sensor_type,
        field_id=sensor.field_id,
        field_name=sensor.field_name,
        reading_value=value,
        unit="%",
        timestamp=timestamp,
        processed_at=timestamp,
        **kwargs,
    )


@pytest.fixture()
def populated_store() -> SensorStore:
    store = SensorStore()
    moisture = _sensor("sm-1", "soil_moisture", battery_level=80)
    temperature = _sensor("t-1", "temperature", field_id="field-2", battery_level=10)
    store.put_sensor(moisture)
    store.put_sensor(temperature)
    store.put_sensor(_sensor("t-2", "temperature", status=SensorStatus.offline))

    day = datetime(2024, 1, 15, tzinfo=timezone.utc)
    for minute, value in ((5, 100.0), (40, 95.0)):
        store.append_reading(_reading(moisture, value, day.replace(hour=10, minute=minute)))
    store.append_reading(
        _reading(moisture, 130.0, day.replace(hour=11, minute=10), anomaly_detected=True)
    )
    store.append_reading(_reading(temperature, 20.0, day.replace(hour=10, minute=15)))
    # Outside every supported period.
    store.append_reading(_reading(moisture, 1.0, NOW - timedelta(days=120)))

    store.put_alert(
        SensorAlert(
            alert_id="recent",
            sensor_id="sm-1",
            sensor_type="soil_moisture",
            alert_type=AlertType.anomaly,
            severity=Severity.medium,
            message="Statistical anomaly detected in sensor reading",
            created_at=day.replace(hour=11, minute=10),
        )
    )
    store.put_alert(
        SensorAlert(
            alert_id="stale",
            sensor_id="sm-1",
            sensor_type="soil_moisture",
            alert_type=AlertType.threshold,
            message="old",
            created_at=NOW - timedelta(days=30),
        )
    )
    return store


@pytest.fixture()
def service(populated_store: SensorStore) -> AnalyticsService:
    return AnalyticsService(
        store=populated_store,
        aggregator=Aggregator(),
        estimator=TrendEstimator(),
        clock=lambda: NOW,
    )


def test_hourly_analytics_payload(service) -> None:
    response = service.run(AnalyticsQuery(period="7d", aggregation="hourly"))

    analytics = response.analytics
    assert response.parameters.period == "7d"
    assert response.parameters.aggregation == "hourly"
    assert response.message is None

    moisture_points = [point for point in analytics.timeSeries if point.sensor_id == "sm-1"]
    assert [point.reading_count for point in moisture_points] == [2, 1]
    assert moisture_points[0].reading_value == 97.5
    assert moisture_points[0].timestamp == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
    assert moisture_points[1].anomaly_count == 1
    assert sum(point.reading_count for point in analytics.timeSeries) == 4

    trend = analytics.trends["soil_moisture"]
    assert trend.change_percent == 30.0
    assert trend.direction is TrendDirection.increasing
    assert trend.confidence is Confidence.low
    assert analytics.trends["temperature"].sample_count == 1

    assert analytics.summary["total_readings"] == 4
    assert analytics.summary["anomaly_count"] == 1
    assert [alert.alert_id for alert in analytics.alerts] == ["recent"]

    health = analytics.sensorHealth
    assert health.total_sensors == 3
    assert health.active_sensors == 2
    assert health.offline_sensors == 1
    assert health.low_battery_sensors == 1
    assert health.average_battery_level == 45.0


def test_filters_narrow_the_window(service) -> None:
    response = service.run(AnalyticsQuery(sensor_type="temperature", aggregation="daily"))

    analytics = response.analytics
    assert [point.sensor_id for point in analytics.timeSeries] == ["t-1"]
    assert set(analytics.trends) == {"temperature"}
    assert analytics.alerts == []


def test_field_filter(service) -> None:
    response = service.run(AnalyticsQuery(field_id="field-2"))

    assert {point.field_id for point in response.analytics.timeSeries} == {"field-2"}


def test_unknown_period_falls_back_to_default(service) -> None:
    response = service.run(AnalyticsQuery(period="1y"))

    assert response.parameters.period == "7d"


def test_long_period_still_excludes_older_readings(service) -> None:
    response = service.run(AnalyticsQuery(period="90d", aggregation="weekly"))

    assert response.analytics.summary["total_readings"] == 4
    assert [alert.alert_id for alert in response.analytics.alerts] == ["recent", "stale"]


def test_empty_window_returns_message(service) -> None:
    response = service.run(AnalyticsQuery(sensor_id="does-not-exist"))

    assert response.message == "No sensor data available for the specified period"
    assert response.analytics.timeSeries == []
    assert response.analytics.summary == {}
    assert response.analytics.trends == {}


def test_invalid_aggregation_is_rejected(service) -> None:
    with pytest.raises(ValidationError):
        service.run(AnalyticsQuery(aggregation="monthly"))


def test_sensor_health_with_no_batteries() -> None:
    health = summarize_sensor_health(
        [
            _sensor("a", "humidity", status=SensorStatus.maintenance),
            _sensor("b", "humidity"),
        ]
    )

    assert health.total_sensors == 2
    assert health.maintenance_sensors == 1
    assert health.average_battery_level == 0.0
    assert health.sensors_by_type["humidity"].total == 2
    assert health.sensors_by_type["humidity"].active == 1

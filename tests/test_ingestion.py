from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from app.schemas import AlertType, ReadingSubmission, SensorStatus, Severity
from conftest import START, register
from services.anomaly import STANDARD_DEVIATION_CAP, AnomalyFlagger
from services.errors import ValidationError
from services.ingestion import IngestionService


def _submit(ingestion: IngestionService, value, sensor_id: str = "sm-1", **kwargs):
    return ingestion.submit_reading(
        ReadingSubmission(sensor_id=sensor_id, reading_value=value, **kwargs)
    )


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"reading_value": 10}, "Sensor ID and reading value are required"),
        ({"sensor_id": "sm-1"}, "Sensor ID and reading value are required"),
        ({"sensor_id": "  ", "reading_value": 10}, "Sensor ID and reading value are required"),
        ({"sensor_id": "sm-1", "reading_value": "abc"}, "Reading value must be a valid number"),
        ({"sensor_id": "sm-1", "reading_value": True}, "Reading value must be a valid number"),
        ({"sensor_id": "sm-1", "reading_value": "nan"}, "Reading value must be a valid number"),
        (
            {"sensor_id": "sm-1", "reading_value": 10, "quality_score": 1.5},
            "Quality score must be a number between 0 and 1",
        ),
        (
            {"sensor_id": "sm-1", "reading_value": 10, "quality_score": "high"},
            "Quality score must be a number between 0 and 1",
        ),
    ],
)
def test_invalid_submissions_have_no_side_effects(ingestion, store, payload, message) -> None:
    register(ingestion)

    with pytest.raises(ValidationError, match=message):
        ingestion.submit_reading(ReadingSubmission(**payload))

    assert store.query_readings() == []
    assert store.query_alerts() == []


def test_numeric_strings_are_accepted(ingestion) -> None:
    register(ingestion)

    outcome = _submit(ingestion, " 42.5 ", quality_score="0.8")

    assert outcome.reading.reading_value == 42.5
    assert outcome.reading.quality_score == 0.8


def test_unknown_sensor_raises_key_error(ingestion) -> None:
    with pytest.raises(KeyError, match="missing"):
        _submit(ingestion, 10, sensor_id="missing")


def test_inactive_sensor_is_rejected(ingestion, store) -> None:
    register(ingestion, status=SensorStatus.maintenance)

    with pytest.raises(ValidationError, match="Status: maintenance"):
        _submit(ingestion, 50)

    assert store.query_readings() == []


def test_reading_defaults_from_sensor_and_reference_data(ingestion) -> None:
    register(ingestion)

    outcome = _submit(ingestion, 50)

    reading = outcome.reading
    assert reading.unit == "%"
    assert reading.quality_score == 1.0
    assert reading.sensor_type == "soil_moisture"
    assert reading.field_id == "field-1"
    assert reading.timestamp.tzinfo is not None
    assert reading.anomaly_detected is False
    assert outcome.anomaly.checked is False


def test_explicit_unit_and_naive_timestamp(ingestion) -> None:
    register(ingestion)

    outcome = _submit(ingestion, 50, unit="vol%", timestamp=datetime(2024, 1, 1, 8, 30))

    assert outcome.reading.unit == "vol%"
    assert outcome.reading.timestamp == datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)


def test_departure_from_constant_history_is_flagged_and_alerted(ingestion, store) -> None:
    register(ingestion)
    for _ in range(5):
        assert _submit(ingestion, 50).anomaly.is_anomaly is False

    same = _submit(ingestion, 50)
    spike = _submit(ingestion, 70)

    assert same.anomaly.checked is True
    assert same.anomaly.is_anomaly is False
    assert spike.reading.anomaly_detected is True
    assert spike.anomaly.standard_deviations == STANDARD_DEVIATION_CAP
    assert spike.reading.anomaly_details == spike.anomaly

    anomaly_alerts = [
        alert for alert in store.query_alerts() if alert.alert_type is AlertType.anomaly
    ]
    assert len(anomaly_alerts) == 1
    assert anomaly_alerts[0].current_value == 70
    assert anomaly_alerts[0].severity is Severity.medium


def test_anomaly_check_uses_pre_insertion_history(ingestion) -> None:
    register(ingestion)
    for value in (50, 50):
        _submit(ingestion, value)

    # Two prior readings: not enough history yet.
    assert _submit(ingestion, 90).anomaly.checked is False
    # Three prior readings now include the 90.
    assert _submit(ingestion, 60).anomaly.checked is True


@pytest.mark.parametrize(
    "sensor_type, value, expected",
    [
        ("soil_moisture", 5.0, [(Severity.high, 20.0)]),
        ("soil_moisture", 15.0, [(Severity.medium, 20.0)]),
        ("soil_moisture", 85.0, [(Severity.medium, 80.0)]),
        ("temperature", 61.0, [(Severity.high, 40.0)]),
        ("soil_moisture", 50.0, []),
        ("unknown_type", 1e6, []),
    ],
)
def test_threshold_alerts(ingestion, store, sensor_type, value, expected) -> None:
    register(ingestion, sensor_id="s-1", sensor_type=sensor_type)

    _submit(ingestion, value, sensor_id="s-1")

    threshold_alerts = [
        alert for alert in store.query_alerts() if alert.alert_type is AlertType.threshold
    ]
    assert [(alert.severity, alert.threshold_value) for alert in threshold_alerts] == expected


def test_out_of_range_values_are_logged_not_rejected(ingestion, caplog) -> None:
    register(ingestion)

    with caplog.at_level(logging.WARNING):
        outcome = _submit(ingestion, 150)

    assert outcome.reading.reading_value == 150
    records = [record for record in caplog.records if record.name == "services.ingestion"]
    assert any("outside expected range" in record.getMessage() for record in records)
    assert any(getattr(record, "sensor_id", None) == "sm-1" for record in records)


def test_anomalies_are_logged_with_context(ingestion, caplog) -> None:
    register(ingestion)
    for _ in range(3):
        _submit(ingestion, 50)

    with caplog.at_level(logging.WARNING):
        _submit(ingestion, 10)

    records = [
        record
        for record in caplog.records
        if record.name == "services.ingestion" and "Anomalous" in record.getMessage()
    ]
    assert len(records) == 1
    assert records[0].reading_value == 10
    assert records[0].deviation == 40


def test_submission_refreshes_sensor_updated_at(ingestion, store) -> None:
    record = register(ingestion)

    _submit(ingestion, 50)

    assert store.get_sensor("sm-1").updated_at > record.updated_at


def test_list_readings_newest_first_within_window(ingestion, clock) -> None:
    register(ingestion)
    _submit(ingestion, 10, timestamp=datetime(2023, 12, 1, tzinfo=timezone.utc))
    _submit(ingestion, 20)
    _submit(ingestion, 30)

    recent = ingestion.list_readings(hours=24)
    everything = ingestion.list_readings(hours=0)
    limited = ingestion.list_readings(hours=0, limit=1)

    assert [reading.reading_value for reading in recent] == [30, 20]
    assert [reading.reading_value for reading in everything] == [30, 20, 10]
    assert [reading.reading_value for reading in limited] == [30]
    with pytest.raises(ValidationError):
        ingestion.list_readings(limit=0)


def test_register_sensor_keeps_created_at(ingestion) -> None:
    first = register(ingestion)
    second = register(ingestion, battery_level=55)

    assert second.created_at == first.created_at == START
    assert second.battery_level == 55
    assert len(ingestion.list_sensors()) == 1


class _TrackingFlagger(AnomalyFlagger):
    def __init__(self) -> None:
        super().__init__()
        self._guard = threading.Lock()
        self.active = 0
        self.max_active = 0

    def evaluate(self, new_value, recent_values):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.01)
        try:
            return super().evaluate(new_value, recent_values)
        finally:
            with self._guard:
                self.active -= 1


def test_submissions_for_one_sensor_are_serialized(store, alerts, clock) -> None:
    flagger = _TrackingFlagger()
    ingestion = IngestionService(store=store, flagger=flagger, alerts=alerts, clock=clock)
    register(ingestion)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(lambda value: _submit(ingestion, value), [50.0] * 8))

    assert flagger.max_active == 1
    assert len(store.query_readings(sensor_id="sm-1")) == 8


def test_different_sensors_are_checked_in_parallel(store, alerts, clock) -> None:
    barrier = threading.Barrier(2)

    class CoordinatedFlagger(AnomalyFlagger):
        def evaluate(self, new_value, recent_values):
            try:
                barrier.wait(timeout=1.0)
            except threading.BrokenBarrierError as exc:
                raise AssertionError("Sensors were not checked concurrently") from exc
            return super().evaluate(new_value, recent_values)

    ingestion = IngestionService(
        store=store, flagger=CoordinatedFlagger(), alerts=alerts, clock=clock
    )
    register(ingestion, sensor_id="a")
    register(ingestion, sensor_id="b")

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_submit, ingestion, 50.0, sensor_id) for sensor_id in ("a", "b")]
        outcomes = [future.result(timeout=5) for future in futures]

    assert [outcome.reading.sensor_id for outcome in outcomes] == ["a", "b"]

from __future__ import annotations

import pytest

from app.schemas import AlertCreateRequest, AlertType, Severity
from conftest import register
from services.errors import ValidationError


def test_create_manual_alert_defaults_to_medium(ingestion, alerts) -> None:
    register(ingestion)

    alert = alerts.create_alert(
        AlertCreateRequest(sensor_id="sm-1", alert_type="manual", message="Check valve")
    )

    assert alert.alert_type is AlertType.manual
    assert alert.severity is Severity.medium
    assert alert.sensor_type == "soil_moisture"
    assert alert.acknowledged is False


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"alert_type": "manual", "message": "x"}, "required"),
        ({"sensor_id": "sm-1", "message": "x"}, "required"),
        ({"sensor_id": "sm-1", "alert_type": "manual"}, "required"),
        ({"sensor_id": "sm-1", "alert_type": "bogus", "message": "x"}, "Invalid alert type"),
        (
            {"sensor_id": "sm-1", "alert_type": "manual", "message": "x", "severity": "urgent"},
            "Invalid severity. Must be one of: low, medium, high, critical",
        ),
    ],
)
def test_create_alert_validation(ingestion, alerts, payload, message) -> None:
    register(ingestion)

    with pytest.raises(ValidationError, match=message):
        alerts.create_alert(AlertCreateRequest(**payload))


def test_create_alert_for_unknown_sensor(alerts) -> None:
    with pytest.raises(KeyError):
        alerts.create_alert(
            AlertCreateRequest(sensor_id="ghost", alert_type="manual", message="x")
        )


def test_list_alerts_filters_and_orders_newest_first(ingestion, alerts) -> None:
    register(ingestion, sensor_id="a")
    register(ingestion, sensor_id="b")
    first = alerts.create_alert(
        AlertCreateRequest(sensor_id="a", alert_type="manual", message="one", severity="low")
    )
    second = alerts.create_alert(
        AlertCreateRequest(sensor_id="b", alert_type="manual", message="two", severity="high")
    )
    third = alerts.create_alert(
        AlertCreateRequest(sensor_id="a", alert_type="manual", message="three", severity="high")
    )
    alerts.acknowledge(second.alert_id)

    assert [alert.alert_id for alert in alerts.list_alerts()] == [
        third.alert_id,
        second.alert_id,
        first.alert_id,
    ]
    assert [alert.message for alert in alerts.list_alerts(sensor_id="a")] == ["three", "one"]
    assert [alert.message for alert in alerts.list_alerts(severity="HIGH")] == ["three", "two"]
    assert [alert.message for alert in alerts.list_alerts(acknowledged=False)] == [
        "three",
        "one",
    ]
    assert len(alerts.list_alerts(limit=1)) == 1
    with pytest.raises(ValidationError):
        alerts.list_alerts(limit=0)


def test_acknowledge_is_idempotent(ingestion, alerts) -> None:
    register(ingestion)
    alert = alerts.create_alert(
        AlertCreateRequest(sensor_id="sm-1", alert_type="manual", message="x")
    )

    acknowledged = alerts.acknowledge(alert.alert_id)
    again = alerts.acknowledge(alert.alert_id)

    assert acknowledged.acknowledged is True
    assert acknowledged.acknowledged_at is not None
    assert again.acknowledged_at == acknowledged.acknowledged_at


def test_acknowledge_unknown_alert(alerts) -> None:
    with pytest.raises(KeyError):
        alerts.acknowledge("nope")

"""Threshold, anomaly and manual alerts raised against sensors."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, List, Optional
from uuid import uuid4

from app.schemas import (
    AlertCreateRequest,
    AlertType,
    AnomalyDetails,
    SensorAlert,
    SensorRecord,
    Severity,
)
from datastore.sensor_store import SensorStore, build_default_store
from models.reference import SensorTypeSpec
from services.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_ALERT_LIMIT = 50
LOW_THRESHOLD_SEVERE_FACTOR = 0.5
HIGH_THRESHOLD_SEVERE_FACTOR = 1.5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_severity(value: Optional[str]) -> Optional[Severity]:
    if value is None:
        return None
    try:
        return Severity(value.strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Severity)
        raise ValidationError(f"Invalid severity. Must be one of: {allowed}") from exc


class AlertService:

    def __init__(
        self,
        store: SensorStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.clock = clock

    def raise_threshold_alerts(
        self, sensor: SensorRecord, value: float, type_spec: Optional[SensorTypeSpec]
    ) -> List[SensorAlert]:
        """Raise alerts when ``value`` crosses the type's default thresholds."""
        if type_spec is None:
            return []

        raised: List[SensorAlert] = []
        low = type_spec.threshold_low
        high = type_spec.threshold_high
        if low is not None and value < low:
            severe = value < low * LOW_THRESHOLD_SEVERE_FACTOR
            raised.append(
                self._record(
                    sensor,
                    alert_type=AlertType.threshold,
                    severity=Severity.high if severe else Severity.medium,
                    message=f"Reading ({value}) is below low threshold ({low})",
                    threshold_value=low,
                    current_value=value,
                )
            )
        if high is not None and value > high:
            severe = value > high * HIGH_THRESHOLD_SEVERE_FACTOR
            raised.append(
                self._record(
                    sensor,
                    alert_type=AlertType.threshold,
                    severity=Severity.high if severe else Severity.medium,
                    message=f"Reading ({value}) is above high threshold ({high})",
                    threshold_value=high,
                    current_value=value,
                )
            )
        return raised

    def raise_anomaly_alert(
        self, sensor: SensorRecord, value: float, details: AnomalyDetails
    ) -> SensorAlert:
        return self._record(
            sensor,
            alert_type=AlertType.anomaly,
            severity=Severity.medium,
            message="Statistical anomaly detected in sensor reading",
            current_value=value,
            anomaly_details=details,
        )

    def create_alert(self, request: AlertCreateRequest) -> SensorAlert:
        if not request.sensor_id or not request.alert_type or not request.message:
            raise ValidationError("Sensor ID, alert type, and message are required")
        try:
            alert_type = AlertType(request.alert_type.strip().lower())
        except ValueError as exc:
            allowed = ", ".join(item.value for item in AlertType)
            raise ValidationError(f"Invalid alert type. Must be one of: {allowed}") from exc
        severity = parse_severity(request.severity) or Severity.medium

        sensor = self.store.get_sensor(request.sensor_id)
        if sensor is None:
            raise KeyError(f"Sensor {request.sensor_id!r} not found.")

        return self._record(
            sensor,
            alert_type=alert_type,
            severity=severity,
            message=request.message,
            threshold_value=request.threshold_value,
            current_value=request.current_value,
        )

    def list_alerts(
        self,
        sensor_id: Optional[str] = None,
        severity: Optional[str] = None,
        acknowledged: Optional[bool] = None,
        limit: int = DEFAULT_ALERT_LIMIT,
    ) -> List[SensorAlert]:
        if limit <= 0:
            raise ValidationError("limit must be positive")
        return self.store.query_alerts(
            sensor_id=sensor_id,
            severity=parse_severity(severity),
            acknowledged=acknowledged,
            limit=limit,
        )

    def acknowledge(self, alert_id: str) -> SensorAlert:
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise KeyError(f"Alert {alert_id!r} not found.")
        if alert.acknowledged:
            return alert
        updated = alert.model_copy(
            update={"acknowledged": True, "acknowledged_at": self.clock()}
        )
        self.store.put_alert(updated)
        return updated

    def _record(
        self,
        sensor: SensorRecord,
        *,
        alert_type: AlertType,
        severity: Severity,
        message: str,
        threshold_value: Optional[float] = None,
        current_value: Optional[float] = None,
        anomaly_details: Optional[AnomalyDetails] = None,
    ) -> SensorAlert:
        alert = SensorAlert(
            alert_id=str(uuid4()),
            sensor_id=sensor.sensor_id,
            sensor_type=sensor.sensor_type,
            alert_type=alert_type,
            severity=severity,
            message=message,
            threshold_value=threshold_value,
            current_value=current_value,
            anomaly_details=anomaly_details,
            created_at=self.clock(),
        )
        self.store.put_alert(alert)
        logger.info(
            "Raised sensor alert",
            extra={
                "sensor_id": sensor.sensor_id,
                "alert_type": alert_type.value,
                "severity": severity.value,
            },
        )
        return alert


@lru_cache
def build_default_alerts() -> AlertService:
    return AlertService(store=build_default_store())

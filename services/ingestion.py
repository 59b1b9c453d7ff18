"""Validation and storage of incoming sensor readings."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from app.schemas import (
    AnomalyDetails,
    ReadingSubmission,
    SensorRecord,
    SensorRegistration,
    SensorStatus,
    StoredReading,
)
from datastore.sensor_store import SensorStore, build_default_store
from models.records import AnomalyDecision
from models.reference import get_sensor_type
from services.aggregator import as_utc
from services.alerts import AlertService, build_default_alerts
from services.anomaly import AnomalyFlagger
from services.errors import ValidationError
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_READING_LIMIT = 100
DEFAULT_READING_HOURS = 24


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_number(value: Any, message: str) -> float:
    """Coerce a JSON scalar (number or numeric string) to a finite float."""
    if isinstance(value, bool):
        raise ValidationError(message)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(message)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(message) from exc
    if not math.isfinite(number):
        raise ValidationError(message)
    return number


def parse_quality_score(value: Any) -> float:
    message = "Quality score must be a number between 0 and 1"
    if value is None:
        return 1.0
    score = parse_number(value, message)
    if score < 0 or score > 1:
        raise ValidationError(message)
    return score


@dataclass(frozen=True)
class IngestOutcome:
    reading: StoredReading
    anomaly: AnomalyDetails


def _details(decision: AnomalyDecision) -> AnomalyDetails:
    return AnomalyDetails(
        is_anomaly=decision.is_anomaly,
        checked=decision.checked,
        deviation=decision.deviation,
        standard_deviations=decision.standard_deviations,
        recent_average=decision.recent_average,
        reason=decision.reason,
    )


class IngestionService:
    """Stores readings, flagging anomalies against each sensor's recent history.

    The anomaly check and the insert run under a per-sensor lock so that two
    concurrent submissions for one sensor never share a stale baseline.
    """

    def __init__(
        self,
        store: SensorStore,
        flagger: AnomalyFlagger,
        alerts: AlertService,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.flagger = flagger
        self.alerts = alerts
        self.clock = clock
        self._sensor_locks: Dict[str, Lock] = {}
        self._sensor_locks_lock = Lock()

    def register_sensor(self, registration: SensorRegistration) -> SensorRecord:
        now = self.clock()
        existing = self.store.get_sensor(registration.sensor_id)
        record = SensorRecord(
            **registration.model_dump(),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.store.put_sensor(record)
        return record

    def list_sensors(self) -> List[SensorRecord]:
        return self.store.list_sensors()

    def submit_reading(self, submission: ReadingSubmission) -> IngestOutcome:
        sensor_id = (submission.sensor_id or "").strip()
        if not sensor_id or submission.reading_value is None:
            raise ValidationError("Sensor ID and reading value are required")
        value = parse_number(
            submission.reading_value, "Reading value must be a valid number"
        )
        quality_score = parse_quality_score(submission.quality_score)

        sensor = self.store.get_sensor(sensor_id)
        if sensor is None:
            raise KeyError(f"Sensor {sensor_id!r} not found.")
        if sensor.status is not SensorStatus.active:
            raise ValidationError(f"Sensor is not active. Status: {sensor.status.value}")

        type_spec = get_sensor_type(sensor.sensor_type)
        unit = submission.unit or (type_spec.unit if type_spec else None)
        if type_spec is not None and not type_spec.in_range(value):
            logger.warning(
                "Reading outside expected range [%s, %s]",
                type_spec.min_value,
                type_spec.max_value,
                extra={"sensor_id": sensor_id, "reading_value": value},
            )

        now = self.clock()
        with self._lock_for(sensor_id):
            recent = self.store.recent_values(sensor_id, self.flagger.window_size)
            decision = self.flagger.evaluate(value, recent)
            details = _details(decision)
            reading = StoredReading(
                reading_id=str(uuid4()),
                sensor_id=sensor_id,
                sensor_type=sensor.sensor_type,
                field_id=sensor.field_id,
                field_name=sensor.field_name,
                reading_value=value,
                unit=unit,
                quality_score=quality_score,
                anomaly_detected=decision.is_anomaly,
                anomaly_details=details if decision.is_anomaly else None,
                raw_data=submission.raw_data,
                timestamp=as_utc(submission.timestamp) if submission.timestamp else now,
                processed_at=now,
            )
            self.store.append_reading(reading)

        self.alerts.raise_threshold_alerts(sensor, value, type_spec)
        if decision.is_anomaly:
            logger.warning(
                "Anomalous sensor reading",
                extra={
                    "sensor_id": sensor_id,
                    "reading_value": value,
                    "deviation": decision.deviation,
                    "standard_deviations": decision.standard_deviations,
                },
            )
            self.alerts.raise_anomaly_alert(sensor, value, details)
        self.store.touch_sensor(sensor_id, now)

        return IngestOutcome(reading=reading, anomaly=details)

    def list_readings(
        self,
        sensor_id: Optional[str] = None,
        sensor_type: Optional[str] = None,
        field_id: Optional[str] = None,
        hours: int = DEFAULT_READING_HOURS,
        limit: int = DEFAULT_READING_LIMIT,
    ) -> List[StoredReading]:
        """Return recent readings newest first; ``hours <= 0`` disables the window."""
        if limit <= 0:
            raise ValidationError("limit must be positive")
        since = self.clock() - timedelta(hours=hours) if hours > 0 else None
        return self.store.query_readings(
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            field_id=field_id,
            since=since,
            limit=limit,
            newest_first=True,
        )

    def _lock_for(self, sensor_id: str) -> Lock:
        with self._sensor_locks_lock:
            lock = self._sensor_locks.get(sensor_id)
            if lock is None:
                lock = Lock()
                self._sensor_locks[sensor_id] = lock
            return lock


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires ingestion with the default store and settings."""
    settings = get_settings()
    flagger = AnomalyFlagger(
        window_size=settings.anomaly_window_size,
        min_history=settings.anomaly_min_history,
        sigma_threshold=settings.anomaly_sigma_threshold,
    )
    return IngestionService(
        store=build_default_store(),
        flagger=flagger,
        alerts=build_default_alerts(),
    )

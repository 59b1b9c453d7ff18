from __future__ import annotations
import json
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError as SchemaError

from app.schemas import SensorAlert, SensorRecord, Severity, StoredReading
from settings import get_settings


class SensorStore:
    """In-memory sensor, reading and alert tables with optional JSON persistence.

    Sensors and alerts are rewritten as one JSON snapshot on change. Readings
    are appended to a JSON-lines journal beside it (``<stem>.readings.jsonl``)
    so that ingestion cost does not grow with the reading history.
    """

    def __init__(self, name: str = "sensor_store", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._sensors: Dict[str, SensorRecord] = {}
        self._readings: Dict[str, List[StoredReading]] = {}
        self._alerts: Dict[str, SensorAlert] = {}
        self.persistence_path = persistence_path
        self.journal_path = (
            persistence_path.with_suffix(".readings.jsonl") if persistence_path else None
        )
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_sensor(self, sensor: SensorRecord) -> None:
        with self._lock:
            self._sensors[sensor.sensor_id] = sensor.model_copy(deep=True)
            self._persist()

    def get_sensor(self, sensor_id: str) -> Optional[SensorRecord]:
        with self._lock:
            sensor = self._sensors.get(sensor_id)
            if sensor is None:
                return None
            return sensor.model_copy(deep=True)

    def list_sensors(self) -> list[SensorRecord]:
        with self._lock:
            return [sensor.model_copy(deep=True) for sensor in self._sensors.values()]

    def touch_sensor(self, sensor_id: str, updated_at: datetime) -> None:
        with self._lock:
            sensor = self._sensors.get(sensor_id)
            if sensor is None:
                raise KeyError(f"Sensor {sensor_id!r} not found.")
            self._sensors[sensor_id] = sensor.model_copy(update={"updated_at": updated_at})
            self._persist()

    def append_reading(self, reading: StoredReading) -> None:
        with self._lock:
            self._readings.setdefault(reading.sensor_id, []).append(
                reading.model_copy(deep=True)
            )
            self._journal(reading)

    def recent_values(self, sensor_id: str, limit: int) -> list[float]:
        """Return up to ``limit`` reading values for a sensor, newest first."""

        with self._lock:
            readings = list(self._readings.get(sensor_id, ()))
        readings.sort(key=lambda reading: reading.timestamp, reverse=True)
        return [reading.reading_value for reading in readings[:limit]]

    def query_readings(
        self,
        sensor_id: Optional[str] = None,
        sensor_type: Optional[str] = None,
        field_id: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> list[StoredReading]:
        with self._lock:
            if sensor_id is not None:
                candidates = list(self._readings.get(sensor_id, ()))
            else:
                candidates = [
                    reading for readings in self._readings.values() for reading in readings
                ]

        matches = [
            reading
            for reading in candidates
            if (sensor_type is None or reading.sensor_type == sensor_type)
            and (field_id is None or reading.field_id == field_id)
            and (since is None or reading.timestamp >= since)
        ]
        matches.sort(key=lambda reading: reading.timestamp, reverse=newest_first)
        if limit is not None:
            matches = matches[:limit]
        return [reading.model_copy(deep=True) for reading in matches]

    def put_alert(self, alert: SensorAlert) -> None:
        with self._lock:
            self._alerts[alert.alert_id] = alert.model_copy(deep=True)
            self._persist()

    def get_alert(self, alert_id: str) -> Optional[SensorAlert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return None
            return alert.model_copy(deep=True)

    def query_alerts(
        self,
        sensor_id: Optional[str] = None,
        sensor_type: Optional[str] = None,
        severity: Optional[Severity] = None,
        acknowledged: Optional[bool] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[SensorAlert]:
        """Return matching alerts, newest first."""

        with self._lock:
            candidates = list(self._alerts.values())

        matches = [
            alert
            for alert in candidates
            if (sensor_id is None or alert.sensor_id == sensor_id)
            and (sensor_type is None or alert.sensor_type == sensor_type)
            and (severity is None or alert.severity == severity)
            and (acknowledged is None or alert.acknowledged == acknowledged)
            and (since is None or alert.created_at >= since)
        ]
        matches.sort(key=lambda alert: alert.created_at, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return [alert.model_copy(deep=True) for alert in matches]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "sensors": {
                sensor_id: sensor.model_dump(mode="json")
                for sensor_id, sensor in self._sensors.items()
            },
            "alerts": [alert.model_dump(mode="json") for alert in self._alerts.values()],
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _journal(self, reading: StoredReading) -> None:
        if not self.journal_path:
            return
        with self.journal_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(reading.model_dump(mode="json"), sort_keys=True) + "\n")

    def _load_from_disk(self) -> None:
        if self.persistence_path and self.persistence_path.exists():
            try:
                raw = self.persistence_path.read_text() or "{}"
                data = json.loads(raw)
            except (OSError, json.JSONDecodeError):
                data = {}

            for sensor_id, payload in data.get("sensors", {}).items():
                self._sensors[sensor_id] = SensorRecord.model_validate(payload)
            for payload in data.get("alerts", []):
                alert = SensorAlert.model_validate(payload)
                self._alerts[alert.alert_id] = alert

        if self.journal_path and self.journal_path.exists():
            text = self.journal_path.read_text(encoding="utf-8")
            for line in text.splitlines():
                if not line.strip():
                    continue
                try:
                    reading = StoredReading.model_validate_json(line)
                except SchemaError:
                    # A torn line from an interrupted append.
                    continue
                self._readings.setdefault(reading.sensor_id, []).append(reading)
            if text and not text.endswith("\n"):
                # Keep the next append off the torn line.
                with self.journal_path.open("a", encoding="utf-8") as handle:
                    handle.write("\n")


@lru_cache
def build_default_store(path: Optional[str] = None) -> SensorStore:
    settings = get_settings()
    store_path = settings.store_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return SensorStore(persistence_path=persistence)

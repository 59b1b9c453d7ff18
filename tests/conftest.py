from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from app.schemas import SensorRegistration, SensorStatus
from datastore.sensor_store import SensorStore
from services.alerts import AlertService
from services.anomaly import AnomalyFlagger
from services.ingestion import IngestionService

START = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + self.step
        return now


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def store() -> SensorStore:
    return SensorStore()


@pytest.fixture()
def alerts(store: SensorStore, clock: StepClock) -> AlertService:
    return AlertService(store=store, clock=clock)


@pytest.fixture()
def ingestion(store: SensorStore, alerts: AlertService, clock: StepClock) -> IngestionService:
    return IngestionService(store=store, flagger=AnomalyFlagger(), alerts=alerts, clock=clock)


def register(
    ingestion: IngestionService,
    sensor_id: str = "sm-1",
    sensor_type: str = "soil_moisture",
    status: SensorStatus = SensorStatus.active,
    battery_level: Optional[float] = None,
    field_id: str = "field-1",
):
    return ingestion.register_sensor(
        SensorRegistration(
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            field_id=field_id,
            field_name="North plot",
            status=status,
            battery_level=battery_level,
        )
    )

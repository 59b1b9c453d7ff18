"""Fleet health summary for registered sensors."""

from __future__ import annotations

from typing import Iterable

from app.schemas import SensorHealth, SensorRecord, SensorStatus, TypeHealth
from services.ratios import guarded_ratio

LOW_BATTERY_LEVEL = 20.0


def summarize_sensor_health(sensors: Iterable[SensorRecord]) -> SensorHealth:
    health = SensorHealth()
    battery_total = 0.0
    battery_count = 0

    for sensor in sensors:
        health.total_sensors += 1
        by_type = health.sensors_by_type.setdefault(sensor.sensor_type, TypeHealth())
        by_type.total += 1

        if sensor.status is SensorStatus.active:
            health.active_sensors += 1
            by_type.active += 1
        elif sensor.status is SensorStatus.offline:
            health.offline_sensors += 1
            by_type.offline += 1
        elif sensor.status is SensorStatus.maintenance:
            health.maintenance_sensors += 1

        if sensor.battery_level is not None:
            battery_total += sensor.battery_level
            battery_count += 1
            if sensor.battery_level < LOW_BATTERY_LEVEL:
                health.low_battery_sensors += 1

    health.average_battery_level = guarded_ratio(battery_total, battery_count).value_or(0.0)
    return health

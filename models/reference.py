"""Read-only reference data for the sensor types the service understands."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True, slots=True)
class SensorTypeSpec:
    """Unit, plausible range and default alert thresholds for a sensor type."""

    type_name: str
    unit: str
    min_value: float
    max_value: float
    threshold_low: Optional[float] = None
    threshold_high: Optional[float] = None

    def in_range(self, value: float) -> bool:
        return self.min_value <= value <= self.max_value


def _build_table(*specs: SensorTypeSpec) -> Mapping[str, SensorTypeSpec]:
    return MappingProxyType({spec.type_name: spec for spec in specs})


SENSOR_TYPES: Mapping[str, SensorTypeSpec] = _build_table(
    SensorTypeSpec("soil_moisture", "%", 0.0, 100.0, threshold_low=20.0, threshold_high=80.0),
    SensorTypeSpec("temperature", "°C", -40.0, 60.0, threshold_low=5.0, threshold_high=40.0),
    SensorTypeSpec("humidity", "%", 0.0, 100.0, threshold_low=30.0, threshold_high=90.0),
    SensorTypeSpec("soil_ph", "pH", 0.0, 14.0, threshold_low=5.5, threshold_high=7.5),
    SensorTypeSpec("soil_temperature", "°C", -20.0, 50.0, threshold_low=10.0, threshold_high=35.0),
    SensorTypeSpec("light_intensity", "lux", 0.0, 200000.0),
    SensorTypeSpec("rainfall", "mm", 0.0, 500.0, threshold_high=100.0),
    SensorTypeSpec("water_level", "cm", 0.0, 1000.0, threshold_low=10.0),
)


def get_sensor_type(type_name: str) -> Optional[SensorTypeSpec]:
    return SENSOR_TYPES.get(type_name)

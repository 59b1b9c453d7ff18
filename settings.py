from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "SENSOR_STORE_PERSISTENCE_PATH"
_ANOMALY_WINDOW_ENV = "ANOMALY_WINDOW_SIZE"
_ANOMALY_MIN_HISTORY_ENV = "ANOMALY_MIN_HISTORY"
_ANOMALY_SIGMA_ENV = "ANOMALY_SIGMA_THRESHOLD"
_DEFAULT_PERIOD_ENV = "DEFAULT_ANALYTICS_PERIOD"
_LOG_LEVEL_ENV = "LOG_LEVEL"

ANALYTICS_PERIOD_HOURS = {
    "24h": 24,
    "7d": 7 * 24,
    "30d": 30 * 24,
    "90d": 90 * 24,
}


@dataclass(frozen=True)
class Settings:
    store_persistence_path: Optional[str]
    anomaly_window_size: int
    anomaly_min_history: int
    anomaly_sigma_threshold: float
    default_period: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_period(default: str) -> str:
    candidate = _read_str_env(_DEFAULT_PERIOD_ENV, default).lower()
    return candidate if candidate in ANALYTICS_PERIOD_HOURS else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_persistence_path=_read_optional_env(
            _STORE_PATH_ENV, "./tmp/sensor_store.json"
        ),
        anomaly_window_size=_read_positive_int(_ANOMALY_WINDOW_ENV, 10),
        anomaly_min_history=_read_positive_int(_ANOMALY_MIN_HISTORY_ENV, 3),
        anomaly_sigma_threshold=_read_positive_float(_ANOMALY_SIGMA_ENV, 3.0),
        default_period=_read_period("7d"),
        log_level=_read_log_level("INFO"),
    )

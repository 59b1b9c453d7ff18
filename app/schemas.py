"""Pydantic schemas for the HTTP API layer and the sensor store."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.records import Confidence, TrendDirection


class SensorStatus(str, Enum):
    active = "active"
    offline = "offline"
    maintenance = "maintenance"


class AlertType(str, Enum):
    threshold = "threshold"
    anomaly = "anomaly"
    manual = "manual"


class Severity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class SensorRegistration(BaseModel):
    """Payload used to register or update a field sensor."""

    sensor_id: str = Field(..., min_length=1)
    sensor_type: str = Field(..., min_length=1)
    field_id: Optional[str] = None
    field_name: Optional[str] = None
    status: SensorStatus = SensorStatus.active
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    last_maintenance: Optional[datetime] = None


class SensorRecord(SensorRegistration):
    created_at: datetime
    updated_at: datetime


class AnomalyDetails(BaseModel):
    """Anomaly decision persisted alongside a reading."""

    is_anomaly: bool
    checked: bool
    deviation: Optional[float] = None
    standard_deviations: Optional[float] = None
    recent_average: Optional[float] = None
    reason: Optional[str] = None


class ReadingSubmission(BaseModel):
    """Raw reading submission; numeric fields are validated by the service."""

    sensor_id: Optional[str] = None
    reading_value: Optional[Any] = None
    unit: Optional[str] = None
    quality_score: Optional[Any] = None
    raw_data: Optional[Dict[str, Any]] = None
    timestamp: Optional[datetime] = None


class StoredReading(BaseModel):
    reading_id: str
    sensor_id: str
    sensor_type: str
    field_id: Optional[str] = None
    field_name: Optional[str] = None
    reading_value: float
    unit: Optional[str] = None
    quality_score: float = Field(default=1.0, ge=0, le=1)
    anomaly_detected: bool = False
    anomaly_details: Optional[AnomalyDetails] = None
    raw_data: Optional[Dict[str, Any]] = None
    timestamp: datetime
    processed_at: datetime


class ReadingIngestResponse(BaseModel):
    success: bool = True
    reading: StoredReading
    anomaly: AnomalyDetails


class ReadingListResponse(BaseModel):
    success: bool = True
    readings: List[StoredReading] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class SensorAlert(BaseModel):
    alert_id: str
    sensor_id: str
    sensor_type: Optional[str] = None
    alert_type: AlertType
    severity: Severity = Severity.medium
    message: str
    threshold_value: Optional[float] = None
    current_value: Optional[float] = None
    anomaly_details: Optional[AnomalyDetails] = None
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    created_at: datetime


class AlertCreateRequest(BaseModel):
    """Manual alert payload; required fields are checked by the service."""

    sensor_id: Optional[str] = None
    alert_type: Optional[str] = None
    severity: Optional[str] = None
    message: Optional[str] = None
    threshold_value: Optional[float] = None
    current_value: Optional[float] = None


class AlertListResponse(BaseModel):
    success: bool = True
    alerts: List[SensorAlert] = Field(default_factory=list)
    total: int = Field(..., ge=0)


class AlertResponse(BaseModel):
    success: bool = True
    alert: SensorAlert


class TimeSeriesPoint(BaseModel):
    """One aggregated bucket for one sensor."""

    timestamp: datetime = Field(..., description="Start of the time bucket (UTC).")
    sensor_id: str
    sensor_type: str
    field_id: Optional[str] = None
    field_name: Optional[str] = None
    reading_value: float = Field(..., description="Mean reading within the bucket.")
    min_value: float
    max_value: float
    unit: Optional[str] = None
    quality_score: float
    anomaly_count: int = Field(..., ge=0)
    reading_count: int = Field(..., ge=1)


class TrendSummary(BaseModel):
    sensor_type: str
    direction: TrendDirection
    change_percent: float
    confidence: Confidence
    first_value: Optional[float] = None
    last_value: Optional[float] = None
    sample_count: int = Field(..., ge=0)


class TypeHealth(BaseModel):
    total: int = 0
    active: int = 0
    offline: int = 0


class SensorHealth(BaseModel):
    total_sensors: int = 0
    active_sensors: int = 0
    offline_sensors: int = 0
    maintenance_sensors: int = 0
    low_battery_sensors: int = 0
    average_battery_level: float = 0.0
    sensors_by_type: Dict[str, TypeHealth] = Field(default_factory=dict)


class Analytics(BaseModel):
    timeSeries: List[TimeSeriesPoint] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)
    trends: Dict[str, TrendSummary] = Field(default_factory=dict)
    alerts: List[SensorAlert] = Field(default_factory=list)
    sensorHealth: SensorHealth = Field(default_factory=SensorHealth)


class AnalyticsParameters(BaseModel):
    period: str
    aggregation: str
    sensor_id: Optional[str] = None
    field_id: Optional[str] = None
    sensor_type: Optional[str] = None


class AnalyticsResponse(BaseModel):
    success: bool = True
    analytics: Analytics
    parameters: AnalyticsParameters
    message: Optional[str] = None


class ImportStatus(str, Enum):
    processed = "processed"
    partial = "partial"
    failed = "failed"


class ImportRowError(BaseModel):
    """Details about a row that failed validation or ingestion."""

    row_number: int = Field(..., ge=1)
    reason: str


class ImportResult(BaseModel):
    status: ImportStatus
    accepted: int = Field(..., ge=0)
    anomalies: int = Field(default=0, ge=0)
    errors: List[ImportRowError] = Field(default_factory=list)

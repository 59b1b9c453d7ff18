"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.schemas import (
    AlertCreateRequest,
    AlertListResponse,
    AlertResponse,
    AnalyticsResponse,
    ImportResult,
    ReadingIngestResponse,
    ReadingListResponse,
    ReadingSubmission,
    SensorRecord,
    SensorRegistration,
)
from services.alerts import DEFAULT_ALERT_LIMIT, AlertService, build_default_alerts
from services.analytics import AnalyticsQuery, AnalyticsService, build_default_analytics
from services.errors import ValidationError
from services.importer import CsvImporter, build_default_importer
from services.ingestion import (
    DEFAULT_READING_HOURS,
    DEFAULT_READING_LIMIT,
    IngestionService,
    build_default_ingestion,
)

router = APIRouter()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_analytics() -> AnalyticsService:
    return build_default_analytics()


def get_alerts() -> AlertService:
    return build_default_alerts()


def get_importer() -> CsvImporter:
    return build_default_importer()


def _bad_request(exc: ValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found(exc: KeyError) -> HTTPException:
    detail = exc.args[0] if exc.args else str(exc)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


@router.post(
    "/sensors",
    response_model=SensorRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Register or update a field sensor.",
)
async def register_sensor(
    registration: SensorRegistration,
    ingestion: IngestionService = Depends(get_ingestion),
) -> SensorRecord:
    return ingestion.register_sensor(registration)


@router.get(
    "/sensors",
    response_model=List[SensorRecord],
    summary="List registered sensors.",
)
async def list_sensors(
    ingestion: IngestionService = Depends(get_ingestion),
) -> List[SensorRecord]:
    return ingestion.list_sensors()


@router.post(
    "/sensors/data",
    response_model=ReadingIngestResponse,
    summary="Submit a single sensor reading and run the anomaly check.",
)
def submit_reading(
    submission: ReadingSubmission,
    ingestion: IngestionService = Depends(get_ingestion),
) -> ReadingIngestResponse:
    try:
        outcome = ingestion.submit_reading(submission)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except KeyError as exc:
        raise _not_found(exc) from exc
    return ReadingIngestResponse(reading=outcome.reading, anomaly=outcome.anomaly)


@router.get(
    "/sensors/data",
    response_model=ReadingListResponse,
    summary="List recent readings, newest first.",
)
async def list_readings(
    sensor_id: Optional[str] = None,
    sensor_type: Optional[str] = None,
    field_id: Optional[str] = None,
    hours: int = DEFAULT_READING_HOURS,
    limit: int = DEFAULT_READING_LIMIT,
    ingestion: IngestionService = Depends(get_ingestion),
) -> ReadingListResponse:
    try:
        readings = ingestion.list_readings(
            sensor_id=sensor_id,
            sensor_type=sensor_type,
            field_id=field_id,
            hours=hours,
            limit=limit,
        )
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    return ReadingListResponse(
        readings=readings,
        total=len(readings),
        parameters={
            "sensor_id": sensor_id,
            "sensor_type": sensor_type,
            "field_id": field_id,
            "hours": hours,
            "limit": limit,
        },
    )


@router.post(
    "/sensors/data/import",
    response_model=ImportResult,
    summary="Import readings from a CSV file.",
)
def import_readings(
    file: UploadFile = File(..., description="CSV file containing sensor readings."),
    importer: CsvImporter = Depends(get_importer),
) -> ImportResult:
    try:
        contents = file.file.read()
        return importer.import_bytes(contents)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    finally:
        file.file.close()


@router.get(
    "/sensors/analytics",
    response_model=AnalyticsResponse,
    summary="Aggregated time series, summary, trends, alerts and sensor health.",
)
async def sensor_analytics(
    sensor_id: Optional[str] = None,
    field_id: Optional[str] = None,
    sensor_type: Optional[str] = None,
    period: Optional[str] = Query(default=None, description="24h, 7d, 30d or 90d."),
    aggregation: str = Query(default="hourly", description="hourly, daily or weekly."),
    analytics: AnalyticsService = Depends(get_analytics),
) -> AnalyticsResponse:
    query = AnalyticsQuery(
        sensor_id=sensor_id,
        field_id=field_id,
        sensor_type=sensor_type,
        period=period,
        aggregation=aggregation,
    )
    try:
        return analytics.run(query)
    except ValidationError as exc:
        raise _bad_request(exc) from exc


@router.get(
    "/sensors/alerts",
    response_model=AlertListResponse,
    summary="List sensor alerts, newest first.",
)
async def list_alerts(
    sensor_id: Optional[str] = None,
    severity: Optional[str] = None,
    acknowledged: Optional[bool] = None,
    limit: int = DEFAULT_ALERT_LIMIT,
    alerts: AlertService = Depends(get_alerts),
) -> AlertListResponse:
    try:
        items = alerts.list_alerts(
            sensor_id=sensor_id,
            severity=severity,
            acknowledged=acknowledged,
            limit=limit,
        )
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    return AlertListResponse(alerts=items, total=len(items))


@router.post(
    "/sensors/alerts",
    response_model=AlertResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a manual alert for a sensor.",
)
async def create_alert(
    request: AlertCreateRequest,
    alerts: AlertService = Depends(get_alerts),
) -> AlertResponse:
    try:
        alert = alerts.create_alert(request)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except KeyError as exc:
        raise _not_found(exc) from exc
    return AlertResponse(alert=alert)


@router.post(
    "/sensors/alerts/{alert_id}/acknowledge",
    response_model=AlertResponse,
    summary="Acknowledge an alert.",
)
async def acknowledge_alert(
    alert_id: str,
    alerts: AlertService = Depends(get_alerts),
) -> AlertResponse:
    try:
        alert = alerts.acknowledge(alert_id)
    except KeyError as exc:
        raise _not_found(exc) from exc
    return AlertResponse(alert=alert)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}

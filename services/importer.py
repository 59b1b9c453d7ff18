"""Bulk ingestion of sensor readings from CSV uploads."""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, List

from app.schemas import ImportResult, ImportRowError, ImportStatus, ReadingSubmission
from services.errors import ValidationError
from services.ingestion import IngestionService, build_default_ingestion

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"sensor_id", "reading_value"}
OPTIONAL_COLUMNS = ("unit", "quality_score", "timestamp")


class CsvImporter:
    """Feeds each CSV row through the ingestion service, collecting row errors."""

    def __init__(self, ingestion: IngestionService) -> None:
        self.ingestion = ingestion

    def import_bytes(self, contents: bytes) -> ImportResult:
        if not contents:
            raise ValidationError("Uploaded file is empty.")
        try:
            text = contents.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("Uploaded file must be UTF-8 encoded.") from exc
        return self.import_text(text)

    def import_text(self, text: str) -> ImportResult:
        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise ValidationError("CSV file is missing a header row.")

        normalized = {name.lower().strip(): name for name in reader.fieldnames if name}
        missing = sorted(REQUIRED_COLUMNS - normalized.keys())
        if missing:
            raise ValidationError(f"CSV missing required columns: {', '.join(missing)}")

        errors: List[ImportRowError] = []
        accepted = 0
        anomalies = 0
        row_count = 0

        for row_number, row in enumerate(reader, start=2):
            row_count += 1
            values = {
                column: (row.get(normalized[column]) or "").strip()
                for column in (*REQUIRED_COLUMNS, *OPTIONAL_COLUMNS)
                if column in normalized
            }
            try:
                submission = self._build_submission(values)
                outcome = self.ingestion.submit_reading(submission)
            except (ValidationError, KeyError) as exc:
                reason = exc.args[0] if exc.args else str(exc)
                errors.append(ImportRowError(row_number=row_number, reason=reason))
                logger.warning(
                    "Skipping row",
                    extra={
                        "row_number": row_number,
                        "sensor_id": values.get("sensor_id") or None,
                        "reason": reason,
                    },
                )
                continue

            accepted += 1
            if outcome.anomaly.is_anomaly:
                anomalies += 1

        if row_count == 0:
            raise ValidationError("CSV file contains no data rows.")

        if accepted == 0 and errors:
            status = ImportStatus.failed
        elif errors:
            status = ImportStatus.partial
        else:
            status = ImportStatus.processed

        return ImportResult(status=status, accepted=accepted, anomalies=anomalies, errors=errors)

    def _build_submission(self, values: Dict[str, str]) -> ReadingSubmission:
        timestamp_raw = values.get("timestamp")
        return ReadingSubmission(
            sensor_id=values.get("sensor_id") or None,
            reading_value=values.get("reading_value") or None,
            unit=values.get("unit") or None,
            quality_score=values.get("quality_score") or None,
            timestamp=self._parse_timestamp(timestamp_raw) if timestamp_raw else None,
        )

    @staticmethod
    def _parse_timestamp(value: str) -> datetime:
        candidate = value.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"

        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValidationError("invalid timestamp") from exc

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)

        return parsed.astimezone(timezone.utc)


@lru_cache
def build_default_importer() -> CsvImporter:
    return CsvImporter(ingestion=build_default_ingestion())

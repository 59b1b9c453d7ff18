from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


def _drop_empty(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class ApiClient:
    """Minimal HTTP client for the sensor analytics service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def submit_reading(
        self,
        sensor_id: str,
        value: float,
        unit: Optional[str] = None,
        quality_score: Optional[float] = None,
    ) -> Dict[str, Any]:
        payload = _drop_empty(
            {
                "sensor_id": sensor_id,
                "reading_value": value,
                "unit": unit,
                "quality_score": quality_score,
            }
        )
        return self._request("POST", "/sensors/data", json=payload)

    def get_analytics(self, **params: Any) -> Dict[str, Any]:
        return self._request("GET", "/sensors/analytics", params=_drop_empty(params))

    def list_alerts(self, **params: Any) -> Dict[str, Any]:
        return self._request("GET", "/sensors/alerts", params=_drop_empty(params))

    def import_file(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise typer.BadParameter(f"File {path} does not exist.")
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        with path.open("rb") as handle:
            return self._request(
                "POST",
                "/sensors/data/import",
                files={"file": (path.name, handle, "text/csv")},
            )

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

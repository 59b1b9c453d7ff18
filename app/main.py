from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.sensor_store import build_default_store
from logging_config import configure_logging
from services.alerts import build_default_alerts
from services.analytics import build_default_analytics
from services.importer import build_default_importer
from services.ingestion import build_default_ingestion

_FACTORIES = (
    build_default_importer,
    build_default_analytics,
    build_default_ingestion,
    build_default_alerts,
    build_default_store,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_ingestion()
    build_default_analytics()
    try:
        yield
    finally:
        for factory in _FACTORIES:
            factory.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Field Sensor Analytics",
        description="Sensor reading ingestion, anomaly flagging and time-series analytics.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()

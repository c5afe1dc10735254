"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_tracker.api.routes import get_api_router
from portfolio_tracker.config import AppSettings, get_settings
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.core.telemetry import setup_telemetry, shutdown_telemetry
from portfolio_tracker.db import Database, utcnow
from portfolio_tracker.providers.base import PriceSource
from portfolio_tracker.schemas import HealthResponse
from portfolio_tracker.services.portfolio import PortfolioService
from portfolio_tracker.services.refresh import refresh_forever

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI, service: PortfolioService):
    await service.database.create_all()
    refresh_task: asyncio.Task | None = None
    interval = service.settings.auto_refresh_minutes
    if interval > 0:
        logger.info("Starting background market data refresh every %s minutes", interval)
        refresh_task = asyncio.create_task(
            refresh_forever(service.scheduled_refresh, interval * 60)
        )
    try:
        yield
    finally:
        if refresh_task is not None:
            refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresh_task
        await service.aclose()
        await service.database.dispose()
        shutdown_telemetry(app)


def create_app(
    database: Database | None = None,
    source: PriceSource | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    database_instance = database or Database(settings.database_url)
    service = PortfolioService(database_instance, source, settings)

    setup_logging()
    logger.debug("Settings: %s", settings.dict_for_logging())

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lambda app: _lifespan(app, service),
    )
    app.state.portfolio_service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(get_api_router(service))

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        """Return service readiness metadata."""

        return HealthResponse(
            status="ok",
            service=settings.telemetry_service_name,
            timestamp=utcnow(),
            timezone=settings.timezone,
        )

    setup_telemetry(app, settings, engine=database_instance.engine)
    return app


app = create_app()

__all__ = ["app", "create_app"]

"""
Spyglasses: AI traffic detection for ASGI apps.
Application entry point and host wiring.

Mount SpyglassesMiddleware on your own app, or run this one as a
reference host:  uvicorn spyglasses.main:app
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from spyglasses.api.admin import router as admin_router
from spyglasses.config import Settings, get_settings
from spyglasses.core.client import SpyglassesClient
from spyglasses.middleware.spyglasses import SpyglassesMiddleware

import structlog


def configure_logging(settings: Settings) -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer() if settings.debug_mode else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug_mode else logging.INFO
        ),
    )


logger = structlog.get_logger()


async def _sync_loop(client: SpyglassesClient, interval: int) -> None:
    """Background "cron tick": sync_if_needed decides whether the TTL has lapsed."""
    while True:
        try:
            await client.sync_if_needed()
        except Exception as e:
            logger.error("pattern_sync_tick_failed", error=str(e))
        await asyncio.sleep(interval)


def create_app(client: SpyglassesClient | None = None, run_sync_loop: bool = True) -> FastAPI:
    client = client or SpyglassesClient(get_settings())
    settings = client.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("spyglasses_starting",
                    configured=client.is_configured,
                    auto_sync=settings.auto_sync)
        await client.start()
        sync_task = None
        if run_sync_loop and settings.auto_sync:
            sync_task = asyncio.create_task(_sync_loop(client, settings.sync_interval_seconds))
        yield
        if sync_task is not None:
            sync_task.cancel()
            await asyncio.gather(sync_task, return_exceptions=True)
        await client.stop()
        logger.info("spyglasses_shutting_down")

    app = FastAPI(
        title="Spyglasses",
        description="AI agent, crawler and AI-referrer detection with remote telemetry.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug_mode else None,
        redoc_url="/redoc" if settings.debug_mode else None,
        openapi_url="/openapi.json" if settings.debug_mode else None,
    )
    app.state.spyglasses = client

    app.add_middleware(SpyglassesMiddleware, client=client)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "spyglasses", "version": "0.1.0"}

    return app


configure_logging(get_settings())
app = create_app()

"""
SpyglassesClient: the host-facing API.

Wires one repository, detection engine, sync coordinator and telemetry
reporter together. Hosts hold one instance per process and share it
across request handlers.
"""

import httpx
import structlog

from spyglasses.config import Settings, get_settings
from spyglasses.core.cache import CacheStore, MemoryCache
from spyglasses.core.detection import DetectionEngine
from spyglasses.core.repository import PatternRepository
from spyglasses.core.sync import SyncCoordinator, SyncResult
from spyglasses.core.telemetry import TelemetryReporter
from spyglasses.models.detection import DetectionResult, RequestContext

logger = structlog.get_logger()


class SpyglassesClient:
    def __init__(
        self,
        settings: Settings | None = None,
        cache: CacheStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else MemoryCache()

        self.repository = PatternRepository.initialize(self.cache, cache_ttl=self.settings.cache_ttl)
        self.engine = DetectionEngine(self.repository)

        # A cached dataset is as fresh as the sync that produced it.
        synced_at = self.repository.current().synced_at
        self.sync_coordinator = SyncCoordinator(
            self.repository,
            self.settings,
            http_client=http_client,
            last_sync_time=synced_at.timestamp() if synced_at else 0.0,
        )
        self.reporter = TelemetryReporter(self.settings, http_client=http_client)

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def detect(self, user_agent: str | None = "", referrer: str | None = "") -> DetectionResult:
        return self.engine.detect(user_agent, referrer)

    def report(self, result: DetectionResult, context: RequestContext) -> bool:
        return self.reporter.report(result, context)

    async def sync_if_needed(self, now: float | None = None) -> SyncResult | None:
        return await self.sync_coordinator.sync_if_needed(now)

    async def sync(self) -> SyncResult:
        return await self.sync_coordinator.sync()

    async def start(self) -> None:
        await self.reporter.start()
        dataset = self.repository.current()
        logger.info("spyglasses_started",
                    configured=self.is_configured,
                    version=dataset.version,
                    patterns=len(dataset.patterns))

    async def stop(self) -> None:
        await self.reporter.stop()

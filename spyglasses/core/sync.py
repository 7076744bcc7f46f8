"""
Pattern sync: pulls a fresh dataset from the patterns API.

Flow:
  1. GET {patterns_endpoint} with x-api-key (30s timeout)
  2. Non-2xx                         → HttpError
  3. Not JSON / not an object / no patterns / missing fields → MalformedResponse
  4. Build a new PatternDataset stamped with the current time
  5. PatternRepository.replace()

Any failure leaves the previous dataset active. Nothing is retried here:
the next scheduled tick is the retry.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from spyglasses.config import Settings
from spyglasses.core.errors import (
    ConfigurationError,
    HttpError,
    MalformedResponse,
    NetworkError,
    SpyglassesError,
    SyncInProgressError,
)
from spyglasses.core.repository import PatternRepository
from spyglasses.models.patterns import AiReferrer, BotPattern, PatternDataset, PropertySettings

logger = structlog.get_logger()


# --- Wire schema ---

class PatternsResponse(BaseModel):
    """Body of GET /api/patterns."""

    model_config = ConfigDict(populate_by_name=True)

    patterns: list[BotPattern] = Field(min_length=1)
    ai_referrers: list[AiReferrer] | None = Field(default=None, alias="aiReferrers")
    property_settings: PropertySettings | None = Field(default=None, alias="propertySettings")
    version: str | None = None

    def to_dataset(self, synced_at: datetime) -> PatternDataset:
        return PatternDataset(
            patterns=tuple(self.patterns),
            ai_referrers=tuple(self.ai_referrers or ()),
            settings=self.property_settings or PropertySettings(),
            version=self.version or "1.0.0",
            synced_at=synced_at,
        )


@dataclass(frozen=True)
class SyncResult:
    dataset: PatternDataset | None = None
    error: SpyglassesError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, dataset: PatternDataset) -> "SyncResult":
        return cls(dataset=dataset)

    @classmethod
    def failure(cls, error: SpyglassesError) -> "SyncResult":
        return cls(error=error)


def parse_patterns_payload(data: object, synced_at: datetime) -> PatternDataset:
    """Validate a decoded patterns response and build a dataset from it."""
    if not isinstance(data, dict):
        raise MalformedResponse("Invalid or empty pattern response: expected a JSON object")
    if not data.get("patterns"):
        raise MalformedResponse("Invalid or empty pattern response: no patterns")

    try:
        payload = PatternsResponse.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise MalformedResponse(f"Invalid pattern response at {location}: {first['msg']}") from e

    return payload.to_dataset(synced_at)


class SyncCoordinator:
    def __init__(
        self,
        repository: PatternRepository,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        last_sync_time: float = 0.0,
    ):
        self.repository = repository
        self.settings = settings
        self.last_sync_time = last_sync_time
        self._http_client = http_client
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def mark_synced(self, now: float | None = None) -> None:
        self.last_sync_time = now if now is not None else time.time()

    def is_due(self, now: float | None = None) -> bool:
        now = now if now is not None else time.time()
        return now - self.last_sync_time >= self.settings.cache_ttl

    async def sync_if_needed(self, now: float | None = None) -> SyncResult | None:
        """Sync when auto-sync is on, a key is set and the TTL has lapsed.

        Returns None when skipped, else the SyncResult.
        """
        now = now if now is not None else time.time()

        if not self.settings.auto_sync:
            return None
        if not self.settings.api_key:
            return None
        if not self.is_due(now):
            return None
        if self.in_progress:
            logger.debug("pattern_sync_skipped_in_progress")
            return None

        logger.info("pattern_sync_starting", endpoint=self.settings.patterns_endpoint)
        result = await self.sync()

        if result.ok:
            self.mark_synced(now)
            logger.info("pattern_sync_completed",
                        version=result.dataset.version,
                        patterns=len(result.dataset.patterns),
                        ai_referrers=len(result.dataset.ai_referrers))
        else:
            logger.error("pattern_sync_failed",
                         error=str(result.error),
                         error_type=type(result.error).__name__)
        return result

    async def sync(self) -> SyncResult:
        """Fetch and install a fresh dataset. Never raises."""
        if not self.settings.api_key:
            return SyncResult.failure(ConfigurationError("No API key set for pattern sync"))
        if self._lock.locked():
            return SyncResult.failure(SyncInProgressError("Pattern sync already in progress"))

        async with self._lock:
            try:
                data = await self._fetch()
                dataset = parse_patterns_payload(data, datetime.now(timezone.utc))
            except SpyglassesError as e:
                logger.debug("pattern_sync_error", error=str(e), error_type=type(e).__name__)
                return SyncResult.failure(e)
            self.repository.replace(dataset)

        settings = dataset.settings
        logger.debug("patterns_updated",
                     patterns=len(dataset.patterns),
                     block_ai_model_trainers=settings.block_ai_model_trainers,
                     custom_blocks=len(settings.custom_blocks),
                     custom_allows=len(settings.custom_allows))
        return SyncResult.success(dataset)

    async def _fetch(self) -> object:
        endpoint = self.settings.patterns_endpoint
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.settings.api_key,
        }
        logger.debug("pattern_sync_request", endpoint=endpoint)

        try:
            if self._http_client is not None:
                resp = await self._http_client.get(
                    endpoint, headers=headers, timeout=self.settings.sync_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(
                        endpoint, headers=headers, timeout=self.settings.sync_timeout_seconds,
                    )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Pattern sync timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Cannot reach patterns endpoint: {e}") from e

        if not resp.is_success:
            raise HttpError(resp.status_code, resp.reason_phrase)

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(f"Pattern response is not valid JSON: {e}") from e

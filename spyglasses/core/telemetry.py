"""
Telemetry reporter: ships detection events to the Spyglasses collector.

report() only builds the payload and drops it on a bounded asyncio queue;
a small pool of worker tasks does the POSTs, so a slow or dead collector
never delays the request that triggered the event.

Failures (timeout, non-2xx, connection error) are logged and dropped.
No retries. A full queue drops the newest event.
"""

import asyncio
from datetime import datetime, timezone

import httpx
import structlog

from spyglasses.config import Settings
from spyglasses.models.detection import DetectionResult, RequestContext, SourceType

logger = structlog.get_logger()

BOT_CONFIDENCE = 0.9
DETECTION_METHOD = "pattern_match"


def _utc_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_metadata(result: DetectionResult) -> dict:
    metadata: dict = {"was_blocked": result.should_block}

    bot = result.bot_info
    if bot is not None:
        metadata.update({
            "agent_type": bot.type,
            "agent_category": bot.category,
            "agent_subcategory": bot.subcategory,
            "company": bot.company,
            "is_compliant": bot.is_compliant,
            "intent": bot.intent,
            "confidence": BOT_CONFIDENCE,
            "detection_method": DETECTION_METHOD,
        })

    referrer = result.referrer_info
    if referrer is not None:
        metadata.update({
            "source_type": SourceType.AI_REFERRER.value,
            "referrer_id": referrer.id,
            "referrer_name": referrer.name,
            "company": referrer.company,
        })

    return metadata


def build_event(
    result: DetectionResult,
    context: RequestContext,
    platform_type: str,
    now: datetime | None = None,
) -> dict:
    """Collector payload for one detected request."""
    status = context.response_status
    if status is None:
        status = 403 if result.should_block else 200

    return {
        "url": context.url,
        "user_agent": context.user_agent,
        "ip_address": context.ip,
        "request_method": context.method or "GET",
        "request_path": context.path or "/",
        "request_query": context.query,
        "request_body": "",
        "referrer": context.referrer,
        "response_status": status,
        "response_time_ms": context.response_time_ms,
        "headers": dict(context.headers),
        "timestamp": _utc_timestamp(now),
        "platform_type": platform_type,
        "metadata": build_metadata(result),
    }


class TelemetryReporter:
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._http_client = http_client
        self._owns_client = http_client is None
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=settings.telemetry_queue_size)
        self._workers: list[asyncio.Task] = []
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def report(self, result: DetectionResult, context: RequestContext) -> bool:
        """Queue an event for the collector. Returns True if it was queued."""
        if not self.settings.api_key:
            logger.debug("telemetry_skipped_no_api_key")
            return False
        if not result.detected:
            return False

        payload = build_event(result, context, self.settings.platform_type)
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("telemetry_queue_full",
                           source_type=result.source_type.value,
                           dropped=self.dropped)
            return False

        logger.debug("telemetry_queued",
                     source_type=result.source_type.value,
                     matched_pattern=result.matched_pattern)
        return True

    async def start(self) -> None:
        if self._workers:
            return

        # Rebuild the queue inside the running loop, keeping anything reported before start().
        queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=self.settings.telemetry_queue_size)
        while not self._queue.empty():
            queue.put_nowait(self._queue.get_nowait())
        self._queue = queue

        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
            self._owns_client = True
        self._workers = [
            asyncio.create_task(self._worker(), name=f"spyglasses-telemetry-{i}")
            for i in range(max(1, self.settings.telemetry_workers))
        ]

    async def flush(self) -> None:
        """Wait until every queued event has been sent (or failed)."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain the queue (bounded by timeout), then stop the workers."""
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("telemetry_drain_timeout", pending=self._queue.qsize())
            for task in self._workers:
                task.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers = []

        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _worker(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self.send(payload)
            finally:
                self._queue.task_done()

    async def send(self, payload: dict) -> bool:
        """POST one event. Never raises; returns True on a 2xx."""
        endpoint = self.settings.collector_endpoint
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.settings.api_key,
        }

        try:
            if self._http_client is not None:
                resp = await self._http_client.post(
                    endpoint, json=payload, headers=headers,
                    timeout=self.settings.collector_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient() as client:
                    resp = await client.post(
                        endpoint, json=payload, headers=headers,
                        timeout=self.settings.collector_timeout_seconds,
                    )
        except httpx.HTTPError as e:
            logger.warning("telemetry_send_failed", endpoint=endpoint, error=str(e))
            return False

        if not resp.is_success:
            logger.warning("telemetry_rejected",
                           endpoint=endpoint,
                           status=resp.status_code,
                           reason=resp.reason_phrase)
            return False

        logger.debug("telemetry_sent", status=resp.status_code)
        return True

"""
Admin endpoints: manual pattern sync + sync status.
Guarded by the same API key the client uses against spyglasses.io.
"""

import hmac
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from spyglasses.core.client import SpyglassesClient

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/admin/spyglasses", tags=["admin"])

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_client(request: Request) -> SpyglassesClient:
    return request.app.state.spyglasses


def require_admin(
    client: SpyglassesClient = Depends(get_client),
    raw_key: str | None = Security(api_key_header),
) -> SpyglassesClient:
    if not client.is_configured:
        raise HTTPException(status_code=503, detail="Spyglasses API key is not configured.")
    if not raw_key or not hmac.compare_digest(raw_key, client.settings.api_key):
        raise HTTPException(status_code=403, detail="Invalid API key")
    return client


def _iso(ts: float) -> str | None:
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@router.post("/sync")
async def sync_patterns(client: SpyglassesClient = Depends(require_admin)):
    """Sync patterns now, regardless of the TTL."""
    result = await client.sync()

    if not result.ok:
        logger.error("manual_pattern_sync_failed", error=str(result.error))
        raise HTTPException(status_code=502, detail=f"Failed to sync patterns: {result.error}")

    client.sync_coordinator.mark_synced(time.time())
    logger.info("manual_pattern_sync_completed", patterns=len(result.dataset.patterns))
    return {
        "status": "ok",
        "version": result.dataset.version,
        "patterns": len(result.dataset.patterns),
        "ai_referrers": len(result.dataset.ai_referrers),
    }


@router.get("/status")
async def sync_status(client: SpyglassesClient = Depends(require_admin)):
    dataset = client.repository.current()
    coordinator = client.sync_coordinator
    return {
        "version": dataset.version,
        "patterns": len(dataset.patterns),
        "ai_referrers": len(dataset.ai_referrers),
        "synced_at": dataset.synced_at.isoformat() if dataset.synced_at else None,
        "last_sync_time": _iso(coordinator.last_sync_time),
        "auto_sync": client.settings.auto_sync,
        "sync_in_progress": coordinator.in_progress,
        "telemetry_pending": client.reporter.pending,
        "telemetry_dropped": client.reporter.dropped,
    }

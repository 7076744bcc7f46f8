"""
Spyglasses middleware: runs detection on every request.

Flow:
  1. No API key → pass through untouched
  2. Excluded path prefix / static file extension → pass through
  3. Detect from User-Agent + Referer
  4. should_block → report (403) and answer 403 without calling the app
  5. Otherwise call the app, report with the real status, add Vary
  6. App raised → report (500) and re-raise

Reporting only enqueues; the collector POST happens in the background.
"""

import ipaddress
import posixpath
import time

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from spyglasses.core.client import SpyglassesClient
from spyglasses.models.detection import DetectionResult, RequestContext

import structlog

logger = structlog.get_logger()

# Checked in order; first valid, non-loopback address wins.
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "x-client-ip",
)


def get_client_ip(request: Request) -> str:
    """Extract the real client IP from proxy headers or the socket peer."""
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        # X-Forwarded-For: first hop is the client
        candidate = value.split(",")[0].strip()
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if candidate != "127.0.0.1":
            return candidate
    return request.client.host if request.client else "127.0.0.1"


def extract_headers(request: Request) -> dict[str, str]:
    """Request headers in arrival order; repeats joined with ', '."""
    headers: dict[str, str] = {}
    for name, value in request.headers.items():
        headers[name] = f"{headers[name]}, {value}" if name in headers else value
    return headers


def add_vary_user_agent(response: Response) -> None:
    existing = response.headers.get("vary", "")
    if not existing:
        response.headers["Vary"] = "User-Agent"
    elif "user-agent" not in existing.lower():
        response.headers["Vary"] = f"{existing}, User-Agent"


def forbidden_response() -> Response:
    return PlainTextResponse(
        "Access Denied",
        status_code=403,
        headers={
            "Cache-Control": "private, no-store, max-age=0",
            "Vary": "User-Agent",
        },
    )


class SpyglassesMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, client: SpyglassesClient):
        super().__init__(app)
        self.client = client
        settings = client.settings
        self.exclude_paths = tuple(settings.exclude_paths)
        self.exclude_extensions = {ext.lower().lstrip(".") for ext in settings.exclude_extensions}

    def should_exclude(self, path: str) -> bool:
        if any(path.startswith(prefix) for prefix in self.exclude_paths):
            return True
        extension = posixpath.splitext(path)[1].lstrip(".").lower()
        return bool(extension) and extension in self.exclude_extensions

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        path = request.url.path

        if not self.client.is_configured:
            logger.debug("detection_skipped_no_api_key", path=path)
            return await call_next(request)

        if self.should_exclude(path):
            logger.debug("detection_skipped_excluded", path=path)
            return await call_next(request)

        user_agent = request.headers.get("user-agent", "")
        referrer = request.headers.get("referer", "")
        result = self.client.detect(user_agent, referrer)

        if result.should_block:
            logger.info("request_blocked",
                        source_type=result.source_type.value,
                        pattern=result.matched_pattern,
                        path=path,
                        ip=get_client_ip(request))
            self._report(result, request, 403, started)
            return forbidden_response()

        try:
            response: Response = await call_next(request)
        except Exception:
            if result.detected:
                self._report(result, request, 500, started)
            raise

        if result.detected:
            self._report(result, request, response.status_code, started)
            add_vary_user_agent(response)

        return response

    def _report(self, result: DetectionResult, request: Request, status: int, started: float) -> None:
        context = RequestContext(
            url=str(request.url),
            user_agent=request.headers.get("user-agent", ""),
            ip=get_client_ip(request),
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            referrer=request.headers.get("referer"),
            response_status=status,
            response_time_ms=round((time.monotonic() - started) * 1000),
            headers=extract_headers(request),
        )
        self.client.report(result, context)

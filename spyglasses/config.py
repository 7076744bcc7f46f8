"""
Spyglasses configuration.
All secrets/tunables come from environment variables.
"""

import re
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

_API_KEY_RE = re.compile(r"^[a-zA-Z0-9_-]*$")


class Settings(BaseSettings):
    # --- Credentials ---
    api_key: str = ""
    debug_mode: bool = False

    # --- Pattern sync ---
    auto_sync: bool = True
    patterns_endpoint: str = "https://www.spyglasses.io/api/patterns"
    cache_ttl: int = Field(default=86400, ge=300, le=604800)  # 5 min .. 7 days
    sync_interval_seconds: int = 3600  # how often the background task checks the TTL
    sync_timeout_seconds: float = 30.0

    # --- Telemetry ---
    collector_endpoint: str = "https://www.spyglasses.io/api/collect"
    collector_timeout_seconds: float = 10.0
    platform_type: str = "python"
    telemetry_queue_size: int = 1000
    telemetry_workers: int = 2

    # --- Middleware ---
    exclude_paths: list[str] = [
        "/admin",
        "/batch",
        "/cron",
        "/core",
        "/modules",
        "/themes",
        "/static",
        "/system/files",
    ]
    exclude_extensions: list[str] = [
        "css", "js", "png", "jpg", "jpeg", "gif", "svg", "ico",
        "woff", "woff2", "ttf", "eot", "pdf", "zip", "tar", "gz",
        "xml", "txt", "json",
    ]

    model_config = {"env_prefix": "SPYGLASSES_", "env_file": ".env"}

    @field_validator("api_key")
    @classmethod
    def _check_api_key(cls, value: str) -> str:
        value = value.strip()
        if not _API_KEY_RE.match(value):
            raise ValueError("API key contains invalid characters.")
        return value

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()

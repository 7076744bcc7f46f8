"""
Error taxonomy.

None of these are fatal to the host: sync failures come back inside a
SyncResult, telemetry failures are logged, and a bad pattern is skipped.
"""


class SpyglassesError(Exception):
    """Base class for every Spyglasses failure."""


class ConfigurationError(SpyglassesError):
    """No API key (or an unusable one) is configured."""


class PatternCompileError(SpyglassesError):
    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid bot pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class SyncError(SpyglassesError):
    """Pattern sync did not replace the active dataset."""


class NetworkError(SyncError):
    """Timeout or connection failure talking to a Spyglasses endpoint."""


class HttpError(SyncError):
    def __init__(self, status_code: int, reason: str = ""):
        message = f"Pattern sync HTTP error {status_code}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(SyncError):
    """Patterns endpoint answered, but not with a usable dataset."""


class SyncInProgressError(SyncError):
    """Another sync is already running in this process."""

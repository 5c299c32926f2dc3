"""Error taxonomy for the price service.

Each error maps to one HTTP status in ``api.errors``; services raise these
and never an ``HTTPException`` directly.
"""


class EtfServiceError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamUnavailable(EtfServiceError):
    """External price provider unreachable, non-2xx, or returned an unexpected shape."""

    status_code = 502


class ValidationError(EtfServiceError):
    """A required request field is missing or malformed. Raised before any I/O."""

    status_code = 400


class RateLimited(EtfServiceError):
    """Caller exceeded its request budget for the current window."""

    status_code = 429

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class PersistenceError(EtfServiceError):
    """Durable store write failed."""

    status_code = 500

    def __init__(self, message: str, failed: list[str] | None = None):
        super().__init__(message)
        self.failed = failed or []

"""
Formal failure normalization for image generation backends.
Classifies API and transport failures once, at the point they are raised,
so the runner can decide on retries without re-reading error text.
"""
from enum import Enum
from typing import Any

import httpx


class FailureType(str, Enum):
    """Failure categories shared by all backends."""

    CONNECTION = "connection"  # DNS, refused, space offline / queue full
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"  # 429
    SERVER = "server"  # 5xx
    CLIENT = "client"  # 4xx except 429, bad key, quota, content policy
    UNKNOWN = "unknown"


class ImageGenerationError(Exception):
    """Base classified failure; detail holds provider-specific fields for logging."""

    failure_type: FailureType = FailureType.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        detail: dict[str, Any] | None = None,
        *,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        self.retryable = self.default_retryable if retryable is None else retryable


class BackendConnectionError(ImageGenerationError):
    failure_type = FailureType.CONNECTION
    default_retryable = True

    def __init__(
        self,
        message: str = "Could not connect to image generation service",
        detail: dict[str, Any] | None = None,
        *,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message, detail, retryable=retryable)


class BackendTimeoutError(ImageGenerationError):
    failure_type = FailureType.TIMEOUT
    default_retryable = True

    def __init__(self, timeout_seconds: float, detail: dict[str, Any] | None = None) -> None:
        super().__init__(f"Request timed out after {timeout_seconds:g}s", detail)
        self.timeout_seconds = timeout_seconds


class RateLimitError(ImageGenerationError):
    """Provider throttling; retry_after (seconds) overrides the runner's backoff."""

    failure_type = FailureType.RATE_LIMIT
    default_retryable = True

    def __init__(self, retry_after: float | None = None, detail: dict[str, Any] | None = None) -> None:
        if retry_after is not None:
            message = f"Rate limit exceeded, retry after {retry_after:g}s"
        else:
            message = "Rate limit exceeded. Please try again later."
        super().__init__(message, detail)
        self.retry_after = retry_after


class ServerError(ImageGenerationError):
    failure_type = FailureType.SERVER
    default_retryable = True


class ClientError(ImageGenerationError):
    failure_type = FailureType.CLIENT
    default_retryable = False


class UnknownGenerationError(ImageGenerationError):
    failure_type = FailureType.UNKNOWN
    default_retryable = True


def parse_retry_after_seconds(value: str | None) -> float | None:
    """Parse a Retry-After header (numeric seconds only; HTTP-dates are ignored)."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds


def classify_http_status(
    status_code: int,
    reason: str = "",
    retry_after: str | None = None,
    detail: dict[str, Any] | None = None,
) -> ImageGenerationError:
    """
    Map a non-2xx HTTP status to a classified error.
    401 -> invalid key, 403 -> quota, 429 -> rate limit, 4xx -> client, 5xx -> server.
    """
    detail = dict(detail or {})
    detail["http_status"] = status_code
    suffix = f" - {reason}" if reason else ""

    if status_code == 401:
        return ClientError("Invalid API key", detail)
    if status_code == 403:
        return ClientError("API quota exceeded", detail)
    if status_code == 429:
        if retry_after is not None:
            detail["retry_after"] = retry_after
        return RateLimitError(parse_retry_after_seconds(retry_after), detail)
    if 500 <= status_code < 600:
        return ServerError(f"Server error: {status_code}{suffix}", detail)
    if 400 <= status_code < 500:
        return ClientError(f"Client error: {status_code}{suffix}", detail)
    return UnknownGenerationError(f"Unexpected status: {status_code}{suffix}", detail)


def classify_transport_error(
    exc: httpx.TransportError,
    timeout_seconds: float,
    service_name: str = "image generation service",
) -> ImageGenerationError:
    """Map an httpx transport failure (no HTTP response) to a classified error."""
    if isinstance(exc, httpx.TimeoutException):
        return BackendTimeoutError(timeout_seconds)
    return BackendConnectionError(
        f"Could not connect to {service_name}",
        detail={"transport_error": type(exc).__name__},
    )

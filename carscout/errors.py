"""
Error taxonomy for scraper runs.

Every failure that crosses a transport boundary is translated into one of the
kinds below so the execution loop and orchestrator branch on the kind, never on
message text.
"""
import asyncio
from enum import Enum
from typing import Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    AUTHENTICATION = "authentication"
    CREDENTIAL = "credential"
    EXTRACTION = "extraction"
    CAPTCHA = "captcha"
    DELIVERY = "delivery"
    UNKNOWN = "unknown"


# Browser network failures that are worth retrying
TRANSIENT_NET_ERRORS = (
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_TIMED_OUT",
    "ERR_TIMED_OUT",
    "ERR_NETWORK_CHANGED",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_EMPTY_RESPONSE",
    "ERR_PROXY_CONNECTION_FAILED",
    "ERR_TUNNEL_CONNECTION_FAILED",
)

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


class ScraperError(Exception):
    """Base class for all typed scraper failures."""

    kind = ErrorKind.UNKNOWN


class ConfigurationError(ScraperError):
    """Missing setting, invalid market or unknown source."""

    kind = ErrorKind.CONFIGURATION


class TransientNetworkError(ScraperError):
    """Timeout, connection reset or a retryable HTTP status."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HttpError(ScraperError):
    """Non-retryable, non-2xx HTTP response."""

    def __init__(self, message: str, status_code: int, headers: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}


class AuthenticationError(ScraperError):
    """Login failure. Credential-related failures trip the cross-market breaker."""

    def __init__(self, message: str, credential_related: bool = False):
        super().__init__(message)
        self.credential_related = credential_related

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.CREDENTIAL if self.credential_related else ErrorKind.AUTHENTICATION


class ExtractionError(ScraperError):
    """A page or listing could not be parsed."""

    kind = ErrorKind.EXTRACTION


class CaptchaError(ScraperError):
    """Challenge extraction or classification service failure."""

    kind = ErrorKind.CAPTCHA


class DeliveryError(ScraperError):
    """A sink rejected the results."""

    kind = ErrorKind.DELIVERY

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception to an ErrorKind."""
    if isinstance(exc, ScraperError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, PlaywrightTimeout)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code in RETRYABLE_STATUS_CODES:
            return ErrorKind.TRANSIENT
        return ErrorKind.UNKNOWN
    if isinstance(exc, httpx.TransportError):
        return ErrorKind.TRANSIENT
    if isinstance(exc, PlaywrightError):
        message = str(exc)
        if any(f"net::{code}" in message for code in TRANSIENT_NET_ERRORS):
            return ErrorKind.TRANSIENT
        return ErrorKind.UNKNOWN
    return ErrorKind.UNKNOWN


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT


def compute_backoff_seconds(attempt_index: int, cap: float = 30.0) -> float:
    """Return a capped exponential backoff for the given attempt (1-based)."""
    return float(min(2 ** max(0, attempt_index - 1), cap))


__all__ = [
    "ErrorKind",
    "ScraperError",
    "ConfigurationError",
    "TransientNetworkError",
    "HttpError",
    "AuthenticationError",
    "ExtractionError",
    "CaptchaError",
    "DeliveryError",
    "classify_error",
    "is_transient",
    "compute_backoff_seconds",
]

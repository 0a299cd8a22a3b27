"""Exception hierarchy for the dynamic provider engine."""

from enum import Enum
from typing import Any, Dict, List, Optional


class UniversalErrorType(str, Enum):
    """Vendor-agnostic error categories detected in raw responses."""
    NO_NUMBERS = "NO_NUMBERS"
    NO_BALANCE = "NO_BALANCE"
    BAD_KEY = "BAD_KEY"
    BAD_SERVICE = "BAD_SERVICE"
    BAD_COUNTRY = "BAD_COUNTRY"
    NO_ACTIVATION = "NO_ACTIVATION"
    ACTIVATION_EXPIRED = "ACTIVATION_EXPIRED"
    ACTIVATION_CANCELLED = "ACTIVATION_CANCELLED"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class DynamicProviderError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(DynamicProviderError):
    """Missing or invalid endpoint/mapping configuration. Never retried."""

    def __init__(self, message: str, provider: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.operation = operation


class ProviderApiError(DynamicProviderError):
    """Transport-level failure surfaced after retries are exhausted."""

    def __init__(
        self,
        message: str,
        status: int,
        status_text: str,
        url: str,
        response_body: str,
        request_headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.status_text = status_text
        self.url = url
        self.response_body = response_body
        self.request_headers = request_headers or {}


class CircuitOpenError(ProviderApiError):
    """Raised without touching the network while a provider's circuit is open."""

    def __init__(self, provider: str, url: str = ""):
        super().__init__(
            f"Circuit breaker OPEN for {provider}",
            status=0,
            status_text="Circuit Open",
            url=url,
            response_body="",
        )
        self.provider = provider


class MissingFieldError(DynamicProviderError):
    """A singular operation could not find its required identity fields."""

    def __init__(self, operation: str, expected: List[str], received: Any):
        self.operation = operation
        self.expected = list(expected)
        self.received = received
        super().__init__(
            f"Failed to parse {operation} response. Missing: {', '.join(self.expected)}. Got: {received!r}"
        )


class ProviderError(DynamicProviderError):
    """Business error reported by the vendor inside an otherwise valid response."""

    RETRYABLE = frozenset({
        UniversalErrorType.NO_NUMBERS,
        UniversalErrorType.RATE_LIMITED,
        UniversalErrorType.SERVER_ERROR,
    })
    PERMANENT = frozenset({
        UniversalErrorType.BAD_KEY,
        UniversalErrorType.BAD_SERVICE,
        UniversalErrorType.BAD_COUNTRY,
        UniversalErrorType.NO_ACTIVATION,
        UniversalErrorType.ACTIVATION_EXPIRED,
    })
    LIFECYCLE_TERMINAL = frozenset({
        UniversalErrorType.NO_ACTIVATION,
        UniversalErrorType.ACTIVATION_EXPIRED,
        UniversalErrorType.ACTIVATION_CANCELLED,
    })

    def __init__(self, error_type: UniversalErrorType, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.error_type = error_type
        self.raw_response = raw_response

    @property
    def is_retryable(self) -> bool:
        """Might succeed on retry or with a different provider."""
        return self.error_type in self.RETRYABLE

    @property
    def is_no_stock(self) -> bool:
        return self.error_type == UniversalErrorType.NO_NUMBERS

    @property
    def is_permanent(self) -> bool:
        return self.error_type in self.PERMANENT

    @property
    def is_lifecycle_terminal(self) -> bool:
        """Terminal activation states; these should not degrade provider health."""
        return self.error_type in self.LIFECYCLE_TERMINAL

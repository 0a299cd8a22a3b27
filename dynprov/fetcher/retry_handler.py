"""Retry policy for transient provider failures."""

import random
from typing import Optional, Set


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter_max: float = 0.0
) -> float:
    """
    Calculate exponential backoff delay with optional jitter.

    Formula: min(max_delay, (base_delay * (2 ** attempt)) + random_jitter)

    Args:
        attempt: Attempt number that just failed (1-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter_max: Maximum jitter to add in seconds

    Returns:
        Delay in seconds
    """
    exponential_delay = base_delay * (2 ** attempt)
    jitter = random.uniform(0, jitter_max) if jitter_max > 0 else 0.0
    return min(max_delay, exponential_delay + jitter)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in whole seconds."""
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return float(max(seconds, 0))


class RetryHandler:
    """
    Decides whether and how long to wait before the next attempt.

    - 429: honor Retry-After (+ buffer) when present, else exponential backoff
    - 5xx: linear backoff (attempt * base_delay)
    - network failure / timeout: linear backoff
    - the final attempt is never retried
    """

    RETRYABLE_SERVER_ERRORS: Set[int] = set(range(500, 600))

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retry_after_buffer: float = 1.0,
        max_delay: float = 60.0,
    ):
        """
        Initialize retry handler.

        Args:
            max_attempts: Total attempts including the first one
            base_delay: Base delay in seconds for both backoff shapes
            retry_after_buffer: Seconds added on top of a Retry-After value
            max_delay: Cap for exponential backoff
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retry_after_buffer = retry_after_buffer
        self.max_delay = max_delay

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code == 429 or status_code in self.RETRYABLE_SERVER_ERRORS

    def delay_for_status(
        self,
        status_code: int,
        attempt: int,
        retry_after: Optional[str] = None
    ) -> Optional[float]:
        """
        Delay before retrying an HTTP status, or None if it must not be retried.

        Args:
            status_code: HTTP status of the failed attempt
            attempt: Attempt number that produced it (1-indexed)
            retry_after: Raw Retry-After header value, if any
        """
        if not self.has_attempts_left(attempt) or not self.is_retryable_status(status_code):
            return None

        if status_code == 429:
            seconds = parse_retry_after(retry_after)
            if seconds is not None:
                return seconds + self.retry_after_buffer
            return calculate_backoff_delay(attempt, self.base_delay, self.max_delay)

        return self.base_delay * attempt

    def delay_for_network_error(self, attempt: int) -> Optional[float]:
        """Linear backoff for connection failures and timeouts."""
        if not self.has_attempts_left(attempt):
            return None
        return self.base_delay * attempt

"""Structured logging for provider requests and response mapping."""

import json
import logging
from typing import Any, Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "dynprov", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        """
        Log structured event.

        Standard keys: event, provider, operation, method, url, status,
        attempt, delay_ms, elapsed_ms, cb_state
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def request_start(self, provider: str, method: str, url: str) -> None:
        self.log("request_start", provider=provider, method=method, url=url)

    def request_success(self, provider: str, method: str, url: str, status: int, elapsed_ms: float) -> None:
        self.log("request_success", provider=provider, method=method, url=url, status=status, elapsed_ms=elapsed_ms)

    def request_error(self, provider: str, url: str, status: Optional[int], error: str, attempt: int) -> None:
        self.log("request_error", logging.ERROR, provider=provider, url=url, status=status, error=error, attempt=attempt)

    def retry_scheduled(self, provider: str, reason: str, attempt: int, delay_ms: float) -> None:
        self.log("retry_scheduled", logging.WARNING, provider=provider, reason=reason, attempt=attempt, delay_ms=delay_ms)

    def rate_limit_wait(self, provider: str, delay_ms: float) -> None:
        self.log("rate_limit_wait", logging.DEBUG, provider=provider, delay_ms=delay_ms)

    def circuit_state(self, provider: str, state: str) -> None:
        self.log("circuit_breaker", logging.WARNING, provider=provider, cb_state=state)

    def auto_switch(self, provider: str, operation: str, declared: str, effective: str) -> None:
        self.log("mapping_auto_switch", logging.DEBUG, provider=provider, operation=operation,
                 declared=declared, effective=effective)

    def mapping_fallback(self, provider: str, operation: str, reason: str) -> None:
        self.log("mapping_fallback", logging.WARNING, provider=provider, operation=operation, reason=reason)

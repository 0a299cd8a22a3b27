"""Dispatch resolved requests with rate limiting, circuit breaking and retries."""

import asyncio
import time
from typing import Any, Callable, Optional

import httpx

from dynprov.exceptions import ProviderApiError
from dynprov.fetcher.circuit_breaker import CircuitBreaker
from dynprov.fetcher.endpoint_resolver import mask_headers, mask_url
from dynprov.fetcher.http_client import AsyncHTTPClient
from dynprov.fetcher.rate_limiter import RateLimiter
from dynprov.fetcher.retry_handler import RetryHandler
from dynprov.models.data_models import RequestTrace, ResolvedRequest
from dynprov.monitoring.logger import StructuredLogger


class RequestExecutor:
    """
    Executes one provider's outbound requests.

    Responsibilities:
    - Reserve a rate-limit slot before dispatching
    - Fail fast while the provider's circuit is open
    - Retry 429, 5xx and network failures per ``RetryHandler``
    - Keep a diagnostic trace of the most recent attempt
    """

    def __init__(
        self,
        provider: str,
        http_client: AsyncHTTPClient,
        rate_limiter: RateLimiter,
        retry_handler: RetryHandler,
        circuit_breaker: Optional[CircuitBreaker] = None,
        logger: Optional[StructuredLogger] = None,
        sleeper: Callable[[float], Any] = asyncio.sleep,
        now: Callable[[], float] = time.monotonic,
        auth_key: Optional[str] = None,
        auth_header: Optional[str] = None,
    ):
        """
        Initialize executor.

        Args:
            provider: Provider name used for logs and circuit breaker keys
            http_client: Open HTTP client
            rate_limiter: The provider's rate limiter
            retry_handler: Retry policy
            circuit_breaker: Optional circuit breaker
            logger: Optional structured logger
            sleeper: Async sleep used for retry backoff
            now: Clock used for elapsed times
            auth_key: Credential to mask in traced URLs
            auth_header: Custom auth header name to mask in traces
        """
        self.provider = provider
        self.http_client = http_client
        self.rate_limiter = rate_limiter
        self.retry_handler = retry_handler
        self.circuit_breaker = circuit_breaker
        self.logger = logger or StructuredLogger()
        self._sleep = sleeper
        self._now = now
        self.auth_key = auth_key
        self.auth_header = auth_header
        self.last_trace: Optional[RequestTrace] = None

    def _trace(self, request: ResolvedRequest, status: int, body: Any, started: float) -> float:
        elapsed_ms = round((self._now() - started) * 1000, 2)
        self.last_trace = RequestTrace(
            method=request.method,
            url=mask_url(request.url, self.auth_key),
            headers=mask_headers(request.headers, self.auth_header),
            response_status=status,
            response_body=body,
            elapsed_ms=elapsed_ms,
        )
        return elapsed_ms

    async def _backoff(self, reason: str, attempt: int, delay: float) -> None:
        self.logger.retry_scheduled(self.provider, reason, attempt, round(delay * 1000, 2))
        await self._sleep(delay)

    def _record_failure(self) -> None:
        if self.circuit_breaker:
            self.circuit_breaker.record_failure(self.provider)

    async def execute(self, request: ResolvedRequest) -> httpx.Response:
        """
        Send ``request`` and return the first 2xx response.

        Raises:
            CircuitOpenError: If the provider's circuit is open
            ProviderApiError: On a non-2xx response or network failure once retries are exhausted
        """
        safe_url = mask_url(request.url, self.auth_key)

        if self.circuit_breaker:
            self.circuit_breaker.before_request(self.provider, safe_url)

        try:
            return await self._dispatch(request, safe_url)
        except asyncio.CancelledError:
            # An abandoned call records no outcome
            if self.circuit_breaker:
                self.circuit_breaker.release_trial(self.provider)
            raise

    async def _dispatch(self, request: ResolvedRequest, safe_url: str) -> httpx.Response:
        safe_headers = mask_headers(request.headers, self.auth_header)

        # One slot per logical request; retries are paced by their own backoff
        waited = await self.rate_limiter.acquire()
        if waited > 0:
            self.logger.rate_limit_wait(self.provider, round(waited * 1000, 2))

        attempt = 0
        while True:
            attempt += 1
            self.logger.request_start(self.provider, request.method, safe_url)
            started = self._now()

            try:
                response = await self.http_client.request(request.method, request.url, headers=request.headers)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                reason = "timeout" if isinstance(e, httpx.TimeoutException) else "network"
                self._trace(request, 0, str(e), started)
                self.logger.request_error(self.provider, safe_url, None, f"{reason}: {e}", attempt)

                delay = self.retry_handler.delay_for_network_error(attempt)
                if delay is None:
                    self._record_failure()
                    raise ProviderApiError(
                        f"Network error calling {self.provider}: {e}",
                        status=0,
                        status_text=type(e).__name__,
                        url=safe_url,
                        response_body="",
                        request_headers=safe_headers,
                    ) from e
                await self._backoff(reason, attempt, delay)
                continue
            except Exception:
                self._record_failure()
                raise

            status = response.status_code
            elapsed_ms = self._trace(request, status, response.text, started)

            if response.is_success:
                self.logger.request_success(self.provider, request.method, safe_url, status, elapsed_ms)
                if self.circuit_breaker:
                    self.circuit_breaker.record_success(self.provider)
                return response

            self.logger.request_error(self.provider, safe_url, status, response.reason_phrase, attempt)

            delay = self.retry_handler.delay_for_status(status, attempt, response.headers.get("retry-after"))
            if delay is not None:
                await self._backoff(f"http_{status}", attempt, delay)
                continue

            if self.retry_handler.is_retryable_status(status):
                self._record_failure()
            elif self.circuit_breaker:
                # A definitive 4xx still proves the provider is reachable
                self.circuit_breaker.record_success(self.provider)

            raise ProviderApiError(
                f"Provider API error: {status} {response.reason_phrase}",
                status=status,
                status_text=response.reason_phrase,
                url=safe_url,
                response_body=response.text,
                request_headers=safe_headers,
            )

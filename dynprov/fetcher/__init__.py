"""HTTP fetching with rate limiting and resilience patterns."""

from .circuit_breaker import CircuitBreaker
from .endpoint_resolver import EndpointResolver
from .rate_limiter import RateLimiter
from .request_executor import RequestExecutor
from .retry_handler import RetryHandler

__all__ = ["CircuitBreaker", "EndpointResolver", "RateLimiter", "RequestExecutor", "RetryHandler"]

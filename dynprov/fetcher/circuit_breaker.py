"""Per-provider circuit breaker guarding the retry loop."""

import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from dynprov.exceptions import CircuitOpenError
from dynprov.models.data_models import CircuitState


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        return time.monotonic()


@dataclass
class CircuitBreakerState:
    """Internal state for a single provider."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float = 0.0
    trial_in_flight: bool = False


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states, keyed by provider name.

    - Opens after ``failure_threshold`` consecutive transport failures
    - Rejects calls with CircuitOpenError during ``cooldown_seconds``
    - Lets a single trial call through in HALF_OPEN; closes on success, reopens on failure

    Only requests that exhausted their retries on a network failure, 429 or
    5xx count as failures. Vendor business errors are not recorded here.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 30.0,
        clock: Optional[Clock] = None,
        logger=None,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self._circuits: Dict[str, CircuitBreakerState] = {}

    def _get_circuit(self, provider: str) -> CircuitBreakerState:
        if provider not in self._circuits:
            self._circuits[provider] = CircuitBreakerState()
        return self._circuits[provider]

    def _transition(self, provider: str, circuit: CircuitBreakerState, state: CircuitState) -> None:
        circuit.state = state
        if self.logger:
            self.logger.circuit_state(provider, state.value)

    def before_request(self, provider: str, url: str = "") -> None:
        """
        Gate a request for ``provider``.

        Raises:
            CircuitOpenError: While the circuit is open or a trial call is already running
        """
        circuit = self._get_circuit(provider)

        if circuit.state == CircuitState.CLOSED:
            return

        if circuit.state == CircuitState.OPEN:
            if self.clock.now() - circuit.opened_at < self.cooldown_seconds:
                raise CircuitOpenError(provider, url)
            self._transition(provider, circuit, CircuitState.HALF_OPEN)

        if circuit.trial_in_flight:
            raise CircuitOpenError(provider, url)
        circuit.trial_in_flight = True

    def record_success(self, provider: str) -> None:
        circuit = self._get_circuit(provider)
        circuit.failure_count = 0
        circuit.trial_in_flight = False
        if circuit.state != CircuitState.CLOSED:
            self._transition(provider, circuit, CircuitState.CLOSED)

    def record_failure(self, provider: str) -> None:
        circuit = self._get_circuit(provider)
        circuit.trial_in_flight = False

        if circuit.state == CircuitState.HALF_OPEN:
            circuit.opened_at = self.clock.now()
            self._transition(provider, circuit, CircuitState.OPEN)
            return

        circuit.failure_count += 1
        if circuit.state == CircuitState.CLOSED and circuit.failure_count >= self.failure_threshold:
            circuit.opened_at = self.clock.now()
            self._transition(provider, circuit, CircuitState.OPEN)

    def release_trial(self, provider: str) -> None:
        """Free the half-open slot of a trial call that ended without an outcome."""
        self._get_circuit(provider).trial_in_flight = False

    def state(self, provider: str) -> CircuitState:
        return self._get_circuit(provider).state

    def reset(self, provider: str) -> None:
        """Reset circuit breaker for provider (useful for testing)."""
        self._circuits.pop(provider, None)

"""Shared circuit breaker for outbound integrations.

Stops calls to a failing service (LLM, image backend, object storage) once
failure_threshold consecutive failures are seen. After recovery_timeout one
probe call is let through (half-open); success closes the circuit, failure
opens it again.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from getcare.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject all requests
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int
    recovery_timeout: float


class CircuitBreaker:
    """Async circuit breaker keyed by integration name."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        """Get circuit breaker name."""
        return self._name

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current failure count."""
        return self._failure_count

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (rejecting requests)."""
        return self._state == CircuitState.OPEN

    def _recovery_due(self) -> bool:
        if self._last_failure_time is None:
            return False
        return self._clock() - self._last_failure_time >= self._config.recovery_timeout

    def _transition(self, new_state: CircuitState) -> None:
        previous = self._state
        self._state = new_state
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker state change",
            extra={
                "circuit_name": self._name,
                "previous_state": previous.value,
                "new_state": new_state.value,
                "failure_count": self._failure_count,
                "recovery_timeout": self._config.recovery_timeout,
            },
        )

    async def can_execute(self) -> bool:
        """Check if an operation may run in the current state."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._recovery_due():
                    self._transition(CircuitState.HALF_OPEN)
                    return True
                return False

            # HALF_OPEN: let the probe through
            return True

    async def record_success(self) -> None:
        """Record successful operation."""
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._last_failure_time = None
                self._transition(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        """Record failed operation."""
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

"""
Async circuit breaker for calls to external services.

States:
- CLOSED: calls go through; consecutive failures are counted
- OPEN: calls fail fast with CircuitBreakerError until the cool-down ends
- HALF_OPEN: a few probe calls decide whether to close or reopen

One instance guards the card payment provider, another the Redis
notification publisher.

Usage:
    breaker = CircuitBreaker(CircuitBreakerConfig(name="stripe"))

    async with breaker.call():
        response = await client.post(...)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncGenerator

from shared.config.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    name: str
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 2
    # Raised by a call that reached the provider; not a provider outage
    ignored_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0


class CircuitBreakerError(Exception):
    """The circuit is open; the call was not attempted."""

    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{breaker_name}' is open. Retry after {retry_after:.1f}s")


class CircuitBreaker:
    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()
        self.stats = CircuitBreakerStats()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _set_state(self, state: CircuitState) -> None:
        logger.info(
            "Circuit breaker state change",
            breaker=self.config.name,
            old_state=self._state.value,
            new_state=state.value,
            failures=self._failures,
        )
        self._state = state
        self.stats.state_changes += 1
        self._successes = 0
        self._half_open_calls = 0
        if state == CircuitState.CLOSED:
            self._failures = 0
            self._opened_at = None
        elif state == CircuitState.OPEN:
            self._opened_at = time.monotonic()

    async def _admit(self) -> float | None:
        """Return None when the call may proceed, else seconds to wait."""
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = time.monotonic() - (self._opened_at or 0.0)
                if elapsed < self.config.timeout_seconds:
                    return self.config.timeout_seconds - elapsed
                self._set_state(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    return 1.0
                self._half_open_calls += 1
            return None

    async def record_success(self) -> None:
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.successful_calls += 1
            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
            else:
                self._failures = 0

    async def record_failure(self, error: BaseException | None = None) -> None:
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.failed_calls += 1
            self._failures += 1
            logger.warning(
                "Circuit breaker recorded failure",
                breaker=self.config.name,
                error=str(error) if error else None,
                failures=self._failures,
                threshold=self.config.failure_threshold,
            )
            if self._state == CircuitState.HALF_OPEN or self._failures >= self.config.failure_threshold:
                self._set_state(CircuitState.OPEN)

    @asynccontextmanager
    async def call(self) -> AsyncGenerator[None, None]:
        """
        Guard one call.

        Raises:
            CircuitBreakerError: If the circuit is open.
        """
        retry_after = await self._admit()
        if retry_after is not None:
            self.stats.rejected_calls += 1
            raise CircuitBreakerError(self.config.name, retry_after)

        try:
            yield
        except self.config.ignored_exceptions:
            await self.record_success()
            raise
        except Exception as e:
            await self.record_failure(e)
            raise
        else:
            await self.record_success()

    def reset(self) -> None:
        """Close the circuit and clear the counters."""
        self._set_state(CircuitState.CLOSED)
        self.stats = CircuitBreakerStats()

    def get_stats(self) -> dict[str, Any]:
        """State and counters for the health endpoint."""
        return {
            "state": self._state.value,
            "total_calls": self.stats.total_calls,
            "failed_calls": self.stats.failed_calls,
            "rejected_calls": self.stats.rejected_calls,
        }

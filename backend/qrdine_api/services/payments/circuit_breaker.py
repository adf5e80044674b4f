"""
Circuit breaker for calls to the card payment provider.

Client errors (card declined, bad request) reach the provider and do not
count as an outage.

Usage:
    from qrdine_api.services.payments.circuit_breaker import stripe_breaker

    async with stripe_breaker.call():
        response = await client.post(...)
"""

from shared.infrastructure.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
)


class ProviderRejection(Exception):
    """The provider answered with a client error (card declined, bad request)."""

    def __init__(self, status_code: int, body: dict):
        self.status_code = status_code
        self.body = body
        error = body.get("error", {}) if isinstance(body, dict) else {}
        self.code = error.get("decline_code") or error.get("code")
        self.message = error.get("message") or f"Provider returned HTTP {status_code}"
        super().__init__(self.message)


# Opens after 5 consecutive failures, probes again after 30 s
stripe_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="stripe",
        failure_threshold=5,
        success_threshold=2,
        timeout_seconds=30.0,
        half_open_max_calls=2,
        ignored_exceptions=(ProviderRejection,),
    )
)


def get_breaker_stats() -> dict[str, dict]:
    """Breaker state for the health endpoint."""
    return {stripe_breaker.config.name: stripe_breaker.get_stats()}


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "ProviderRejection",
    "get_breaker_stats",
    "stripe_breaker",
]

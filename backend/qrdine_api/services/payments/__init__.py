"""
Card payment provider integration.
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    ProviderRejection,
    get_breaker_stats,
    stripe_breaker,
)
from .stripe_gateway import StripeGateway, compute_webhook_signature, verify_webhook

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "ProviderRejection",
    "get_breaker_stats",
    "stripe_breaker",
    "StripeGateway",
    "compute_webhook_signature",
    "verify_webhook",
]

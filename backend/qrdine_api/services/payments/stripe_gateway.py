"""
Stripe REST client for card payments.

Only the three calls the order engine needs: create a PaymentIntent, read it
back, and refund it. Every call goes through the provider circuit breaker
and failures are translated to PaymentProviderError:

- card declined / invalid request (4xx): 402 when declined, 502 otherwise
- provider 5xx: 502
- timeout, connection error or open circuit: 503 with Retry-After
"""

import hashlib
import hmac
import json
import time
from typing import Any

import httpx

from shared.config.logging import mask_secret, payments_logger as logger
from shared.config.settings import settings
from shared.utils.exceptions import PaymentProviderError, ValidationError
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    ProviderRejection,
    stripe_breaker,
)


class StripeGateway:
    """
    Thin async wrapper over the Stripe API.

    Usage:
        gateway = StripeGateway()
        intent = await gateway.create_payment_intent(2550, "usd", {"order_id": "7"})
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        breaker: CircuitBreaker = stripe_breaker,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.stripe_secret_key
        self._api_base = (api_base or settings.stripe_api_base).rstrip("/")
        self._timeout = timeout or settings.stripe_timeout_seconds
        self._breaker = breaker
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        if not self._api_key:
            raise PaymentProviderError("Card payments are not configured", is_unavailable=True)

        headers = {"Authorization": f"Bearer {self._api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        logger.debug("Stripe request", method=method, path=path, api_key=mask_secret(self._api_key, visible=8))

        try:
            async with self._breaker.call():
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.request(
                        method,
                        f"{self._api_base}{path}",
                        headers=headers,
                        data=data,
                    )
                    if 400 <= response.status_code < 500:
                        raise ProviderRejection(response.status_code, _json_body(response))
                    response.raise_for_status()
                    return response.json()

        except CircuitBreakerError as e:
            raise PaymentProviderError(
                f"Payment provider temporarily unavailable. Please try again in {int(e.retry_after)} seconds.",
                is_unavailable=True,
                retry_after=max(1, int(e.retry_after)),
            )
        except ProviderRejection as e:
            declined = e.body.get("error", {}).get("type") == "card_error"
            raise PaymentProviderError(
                e.message,
                declined=declined,
                path=path,
                provider_status=e.status_code,
                decline_code=e.code,
            )
        except httpx.HTTPStatusError as e:
            raise PaymentProviderError(
                "Payment provider error",
                path=path,
                provider_status=e.response.status_code,
            )
        except httpx.TransportError as e:
            raise PaymentProviderError(
                "Payment provider unreachable",
                is_unavailable=True,
                path=path,
                error=str(e),
            )

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = value

        intent = await self._request("POST", "/payment_intents", data, idempotency_key)
        logger.info("PaymentIntent created", payment_intent_id=intent.get("id"), amount_cents=amount_cents)
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/payment_intents/{payment_intent_id}")

    async def create_refund(
        self,
        payment_intent_id: str,
        amount_cents: int | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            data["amount"] = amount_cents
        if reason:
            data["reason"] = reason

        refund = await self._request("POST", "/refunds", data)
        logger.info("Refund created", refund_id=refund.get("id"), payment_intent_id=payment_intent_id)
        return refund


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# =============================================================================
# Webhook signatures
# =============================================================================


def compute_webhook_signature(payload: bytes, timestamp: int, secret: str) -> str:
    """HMAC-SHA256 of "{timestamp}.{payload}" as Stripe signs it."""
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_webhook(
    payload: bytes,
    signature_header: str | None,
    secret: str | None = None,
    tolerance_seconds: int | None = None,
    now: float | None = None,
) -> dict[str, Any]:
    """
    Check a Stripe-Signature header ("t=...,v1=...") and return the event.

    Raises:
        ValidationError: Missing, malformed, stale or mismatching signature,
            or a body that is not a JSON object.
    """
    secret = secret if secret is not None else settings.stripe_webhook_secret
    tolerance = tolerance_seconds if tolerance_seconds is not None else settings.stripe_webhook_tolerance_seconds

    if not secret:
        # Production refuses to start without a secret
        logger.warning("Webhook signature verification skipped - no secret configured")
    else:
        if not signature_header:
            raise ValidationError("Missing webhook signature")

        timestamp = None
        signatures = []
        for part in signature_header.split(","):
            key, _, value = part.strip().partition("=")
            if key == "t":
                timestamp = value
            elif key == "v1":
                signatures.append(value)

        if timestamp is None or not timestamp.isdigit() or not signatures:
            raise ValidationError("Malformed webhook signature")

        if abs((now if now is not None else time.time()) - int(timestamp)) > tolerance:
            raise ValidationError("Webhook signature timestamp outside tolerance", timestamp=timestamp)

        expected = compute_webhook_signature(payload, int(timestamp), secret)
        if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
            raise ValidationError("Invalid webhook signature")

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError("Invalid webhook payload")
    if not isinstance(event, dict):
        raise ValidationError("Invalid webhook payload")
    return event
